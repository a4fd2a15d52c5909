"""
Values derived from other parts of the stream (checksums, digests, ...).

A derived placeholder declares the byte ranges it is computed from; if one of
these ranges covers another placeholder, that one must be final before the
computation happens. This builds a dependency graph that we walk by
repeatedly resolving whatever is not waiting on anything anymore, until there
is no progress: what's left is either waiting for a manual patch or stuck in
a cycle.
"""
import logging
from typing import Callable, Dict, List, Sequence, Set

from .exceptions import (
    CyclicDependencyException,
    DerivedComputeException,
    InvalidArgumentException,
)
from .placeholders import ByteRange, Placeholder, PlaceholderKind, PlaceholderRegistry, get_ranges


logger = logging.getLogger(__name__)


class DerivedSpec(object):
    '''Ties a derived placeholder to its input ranges and the function that
    computes its value from them.

    The function receives a list with the contents of each range (in the
    order the ranges were declared) and returns an integer or exactly
    "width" bytes.'''

    def __init__(self, placeholder: Placeholder, ranges: Sequence[ByteRange], compute: Callable):
        self.placeholder = placeholder
        self.ranges = get_ranges(ranges)
        self.compute = compute

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.placeholder!r}, ranges={self.ranges!r})>'

    @property
    def id(self) -> int:
        return self.placeholder.id

    def depends_on(self, placeholder: Placeholder) -> bool:
        return any(placeholder.overlaps(_) for _ in self.ranges)


class Resolver(object):

    def __init__(self, registry: PlaceholderRegistry, stream):
        self.logger = logging.getLogger(__name__)
        self.registry = registry
        self.stream = stream
        self._specs: Dict[int, DerivedSpec] = {}

    def __len__(self):
        return len(self._specs)

    def register(self, placeholder: Placeholder, ranges, compute) -> DerivedSpec:
        if placeholder.kind != PlaceholderKind.DERIVED:
            raise InvalidArgumentException(f'{placeholder!r} is not a derived placeholder', ids=(placeholder.id,))
        if not callable(compute):
            raise InvalidArgumentException(f'compute function must be callable, not {compute!r}')

        spec = DerivedSpec(placeholder, ranges, compute)
        self._specs[placeholder.id] = spec

        self.logger.debug('registered %r' % spec)

        return spec

    def pending(self) -> List[DerivedSpec]:
        return [_ for _ in self._specs.values() if not _.placeholder.resolved]

    def blockers(self, spec: DerivedSpec) -> List[Placeholder]:
        '''Outstanding placeholders (itself included) inside the input ranges.'''
        return [_ for _ in self.registry.pending() if spec.depends_on(_)]

    def compute(self, spec: DerivedSpec):
        '''Run the compute function over the current contents of the input ranges.'''
        chunks = [self.stream.read_range(_.start, len(_)) for _ in spec.ranges]

        try:
            return spec.compute(chunks)
        except Exception as e:
            raise DerivedComputeException(
                f'computing the value of placeholder {spec.id} failed: {e!r}', e, ids=(spec.id,)) from e

    def resolve(self, spec: DerivedSpec) -> Placeholder:
        value = self.compute(spec)
        placeholder = self.registry.resolve_derived(spec.placeholder, value)

        del self._specs[spec.id]

        return placeholder

    def resolve_all(self):
        '''Resolve all the derived placeholders that can be resolved.

        Raises CyclicDependencyException naming the placeholders that depend
        on themselves (directly or not); the ones waiting only for manual
        placeholders are left alone.'''
        progress = True
        passes = 0
        while progress:
            progress = False
            passes += 1
            for spec in self.pending():
                blockers = self.blockers(spec)
                if blockers:
                    self.logger.debug(' %r waits for %s' % (spec, [_.id for _ in blockers]))
                    continue

                self.resolve(spec)
                progress = True

        stuck = self.pending()

        self.logger.debug('derived resolution done in %d passes, %d stuck' % (passes, len(stuck)))

        if not stuck:
            return

        cyclic = self.find_cycles(stuck)
        if cyclic:
            raise CyclicDependencyException(
                'cyclic dependency between derived placeholders %s' % sorted(cyclic), ids=sorted(cyclic))

    def find_cycles(self, stuck: List[DerivedSpec]) -> Set[int]:
        '''Returns the ids of the derived placeholders that can reach themselves
        following the "waits for" relation.'''
        edges: Dict[int, Set[int]] = {}
        for spec in stuck:
            edges[spec.id] = {_.id for _ in self.blockers(spec) if _.kind == PlaceholderKind.DERIVED}

        cyclic = set()
        for origin in edges:
            visited = set()
            frontier = list(edges[origin])
            while frontier:
                node = frontier.pop()
                if node == origin:
                    cyclic.add(origin)
                    break
                if node in visited:
                    continue
                visited.add(node)
                frontier.extend(edges.get(node, ()))

        return cyclic
