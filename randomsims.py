"""
Randomized Schreier-Sims for finite permutation groups.

Given only a generating set, this computes the order of a permutation group,
tests membership and samples (approximately) uniform random elements without
ever enumerating the group. Orders can be huge: the Rubik's cube group has
43252003274489856000 elements.

Permutations are tuples of images acting on the points 0..n-1, so p[x] is the
image of x. The stabilizer chain always uses the full base 0..n-1 and is
rebuilt from the group's current generators whenever it is needed; a chain
must not be kept around after the generator list of its group was changed.

The strong generating set built by random_schreier_sims is a Monte Carlo
result. It stops after a number of consecutive random elements sifted to the
identity, which is a heuristic. Use build_verified for a result that survived
sifting all Schreier generators.
"""


from dataclasses import dataclass, field
from typing import Optional
from random import Random
import logging
import math
import re

logger = logging.getLogger(__name__)


def check_perm(p):
    """Raise an exception if p is not a permutation.
    """
    if set(p) != set(range(len(p))):
        raise ValueError('not a permutation')


def make_perm(images):
    """Return a validated permutation from its list of images.
    """
    p = tuple(images)
    check_perm(p)
    return p


def id_perm(n):
    """Return identity permutation on 0..n-1.
    """
    return tuple(range(n))


def is_id_perm(p):
    """Return whether p is the identity permutation.
    """
    return all(i == j for i, j in enumerate(p))


def cycle_perm(n, cycle):
    """Return a given cycle acting on 0..n-1.
    """
    p = list(range(n))
    if not cycle:
        return tuple(p)
    for i, j in zip(cycle, cycle[1:]):
        p[i] = j
    p[cycle[-1]] = cycle[0]
    return tuple(p)


def cycles_perm(n, cycles):
    """Return the permutation of 0..n-1 given by a list of disjoint cycles.

    Each cycle [c0, c1, ..., ck] maps ci to c(i+1 mod k+1). Points not
    contained in any cycle are fixed.
    """
    p = list(range(n))
    for cycle in cycles:
        for i, a in enumerate(cycle):
            p[a] = cycle[(i + 1) % len(cycle)]
    return make_perm(p)


def apply_perm(p, x):
    """Return the image of the point x under p.
    """
    return p[x]


def mult_perm(p, q):
    """Multiply two permutations, applying p first and then q.
    """
    return tuple(q[i] for i in p)


def compose_perm(a, b):
    """Compose two permutations, applying b first and then a.
    """
    return tuple(a[i] for i in b)


def mult_perms(xs):
    """Multiply a non-empty list of permutations from left to right.
    """
    xs = iter(xs)
    w = next(xs)
    for x in xs:
        w = mult_perm(w, x)
    return w


def inv_perm(p):
    """Inverse of a permutation.
    """
    inv = [0] * len(p)
    for i, j in enumerate(p):
        inv[j] = i
    return tuple(inv)


def exp_perm(p, n):
    """Take a permutation to the nth power.
    """
    if n == 0:
        return id_perm(len(p))
    elif n < 0:
        return exp_perm(inv_perm(p), -n)

    q = exp_perm(mult_perm(p, p), n >> 1)
    if n & 1:
        q = mult_perm(p, q)

    return q


def perm_cycles(p):
    """Return the non-trivial cycles of p, each starting at its first point.
    """
    seen = set()
    cycles = []
    for i in range(len(p)):
        if i in seen or p[i] == i:
            continue
        cycle = [i]
        seen.add(i)
        j = p[i]
        while j != i:
            seen.add(j)
            cycle.append(j)
            j = p[j]
        cycles.append(cycle)
    return cycles


def perm_order(p):
    """Return the order of p, the lcm of its cycle lengths.
    """
    order = 1
    for cycle in perm_cycles(p):
        order = order * len(cycle) // math.gcd(order, len(cycle))
    return order


def fmt_perm(p):
    """Display a permutation as a product of cycles.
    """
    check_perm(p)
    out = ['(%s)' % ' '.join(map(str, c)) for c in perm_cycles(p)]
    if not out:
        return '()'
    return ''.join(out)


def fmt_perm_list(ps):
    """Display a list of permutations, each as a product of cycles.
    """
    return ', '.join(map(fmt_perm, ps))


ELEMENT_SEP_RE = r' *[, ] *'
CYCLE_RE = rf'\(( *\d+({ELEMENT_SEP_RE}\d+)* *)?\) *'


def parse_perm(s, n=0):
    """Parse a permutation given as a product of cycles.

    Cycles need not be disjoint, they are multiplied from left to right. The
    degree of the result is at least n and large enough for every point that
    is mentioned.
    """
    cycles = []
    stripped = re.subn(r'\s', ' ', s)[0].strip()
    for match in re.finditer(CYCLE_RE + r'|.', stripped):
        cycle = match.group().strip()
        if len(cycle) == 1:
            raise ValueError(f"could not parse permutation {s!r}")
        cycle = cycle[1:-1].strip()
        if not cycle:
            continue
        cycle = list(map(int, re.split(ELEMENT_SEP_RE, cycle)))
        if len(set(cycle)) != len(cycle):
            raise ValueError(f"repeated point in cycle of {s!r}")
        cycles.append(cycle)
    n = max(n, max(map(max, cycles), default=-1) + 1)
    out = id_perm(n)
    for cycle in cycles:
        out = mult_perm(out, cycle_perm(n, cycle))
    return out


@dataclass
class Stats:
    products: int = 0
    rounds: int = 0


@dataclass
class Config:
    # Stop random_schreier_sims after this many consecutive random elements
    # that sifted to the identity. None uses the degree of the group.
    exit_rounds: Optional[int] = None

    # ProductReplacer.draw performs mixing_factor * degree replacement steps
    # before returning an element.
    mixing_factor: int = 4

    stats: Stats = field(default_factory=lambda: Stats())
    rng: Random = field(default_factory=lambda: Random())


class NotInOrbit(ValueError):
    pass


class IncompleteStrongGeneratingSet(ValueError):
    def __init__(self, message, witness=None):
        super().__init__(message)
        self.witness = witness


class Group:
    """A permutation group given by a list of generators.

    The degree is taken from the first generator and every generator has to
    be a permutation of the same degree. The generator list is only ever
    appended to, random_schreier_sims does this to turn it into a strong
    generating set for the base 0..n-1.
    """
    def __init__(self, gens, cfg=None):
        gens = [make_perm(g) for g in gens]
        if not gens:
            raise ValueError('a group needs at least one generator')
        self.n = len(gens[0])
        for g in gens:
            if len(g) != self.n:
                raise ValueError(
                    f'generator of degree {len(g)} in a group of degree '
                    f'{self.n}')
        self.gens = gens
        self.id = id_perm(self.n)
        self.cfg = cfg or Config()

    def __repr__(self):
        return f'Group([{fmt_perm_list(self.gens)}])'

    def num_points(self):
        return self.n

    def generators(self):
        """Return the (live) list of generators.
        """
        return self.gens

    def identity(self):
        return self.id

    def add_gen(self, gen):
        """Append a generator.
        """
        gen = make_perm(gen)
        if len(gen) != self.n:
            raise ValueError(
                f'generator of degree {len(gen)} in a group of degree '
                f'{self.n}')
        self.gens.append(gen)

    def orbit(self, a):
        """Compute the orbit of a point under all generators.
        """
        orbit = {a}
        queue = [a]

        while queue:
            a = queue.pop()
            for g in self.gens:
                b = g[a]
                if b not in orbit:
                    orbit.add(b)
                    queue.append(b)

        return orbit


def cyclic(n, cfg=None):
    """Cyclic group generated by the n-cycle (0 1 ... n-1).
    """
    if n < 1:
        raise ValueError('degree must be positive')
    return Group([tuple(range(1, n)) + (0,)], cfg)


def symmetric(n, cfg=None):
    """Symmetric group on 0..n-1 generated by all transpositions.
    """
    if n < 1:
        raise ValueError('degree must be positive')
    gens = [cycle_perm(n, [i, j]) for i in range(n) for j in range(i + 1, n)]
    return Group(gens or [id_perm(n)], cfg)


# Face turns of the Rubik's cube acting on its 48 moving facelets 1..48, the
# point 0 is fixed.
RUBIKS_FACE_TURNS = [
    [[1, 3, 8, 6], [2, 5, 7, 4], [9, 33, 25, 17], [10, 34, 26, 18],
     [11, 35, 27, 19]],
    [[9, 11, 16, 14], [10, 13, 15, 12], [1, 17, 41, 40], [4, 20, 44, 37],
     [6, 22, 46, 35]],
    [[17, 19, 24, 22], [18, 21, 23, 20], [6, 25, 43, 16], [7, 28, 42, 13],
     [8, 30, 41, 11]],
    [[25, 27, 32, 30], [26, 29, 31, 28], [3, 38, 43, 19], [5, 36, 45, 21],
     [8, 33, 48, 24]],
    [[33, 35, 40, 38], [34, 37, 39, 36], [3, 9, 46, 32], [2, 12, 47, 29],
     [1, 14, 48, 27]],
    [[41, 43, 48, 46], [42, 45, 47, 44], [14, 22, 30, 38], [15, 23, 31, 39],
     [16, 24, 32, 40]],
]

RUBIKS_ORDER = 43252003274489856000


def rubiks(cfg=None):
    """Rubik's cube group on 49 points generated by the six face turns.
    """
    return Group([cycles_perm(49, turn) for turn in RUBIKS_FACE_TURNS], cfg)


class ProductReplacer:
    """Generate approximately uniform random elements of a group.

    Keeps a pool seeded with the group's generators and performs random
    product replacement steps on it. There is no proof of uniformity, the
    number of steps per draw is a heuristic.
    """
    def __init__(self, group, cfg=None):
        self.cfg = cfg or group.cfg
        self.n = group.num_points()
        self.pool = list(group.generators())

    def add_gen(self, gen):
        """Add a generator to the pool.
        """
        self.pool.append(gen)

    def stir(self):
        """Perform a random replacement step.
        """
        rng = self.cfg.rng
        k = len(self.pool)

        i = rng.randrange(k)
        j = rng.randrange(k - 1)
        if j >= i:
            j += 1

        p = self.pool[j]
        if rng.randrange(2):
            p = inv_perm(p)

        if rng.randrange(2):
            self.pool[i] = mult_perm(self.pool[i], p)
        else:
            self.pool[i] = mult_perm(p, self.pool[i])
        self.cfg.stats.products += 1

    def draw(self):
        """Sample a random element of the group.
        """
        rng = self.cfg.rng

        if len(self.pool) == 1:
            # Product replacement needs two distinct slots, a single generator
            # generates a cyclic group so we sample a random power.
            gen = self.pool[0]
            return exp_perm(gen, rng.randrange(perm_order(gen)))

        for _ in range(self.cfg.mixing_factor * self.n):
            self.stir()

        return rng.choice(self.pool)


class StabilizerLevel:
    """One level of a stabilizer chain.

    Holds copies of the generators of the group fixing every point of prefix
    together with their inverses, and a Schreier tree for the orbit of point
    under these generators. The tree maps every reached point to the index
    of the generator that first reached it, or to None for point itself.
    """
    def __init__(self, group, prefix, point, cfg=None):
        self.cfg = cfg or group.cfg
        self.n = group.num_points()
        self.prefix = tuple(prefix)
        self.point = point
        self.id = id_perm(self.n)
        self.gens = [
            (g, inv_perm(g)) for g in group.generators()
            if self.fixes_prefix(g)]
        self.rebuild_schreier_tree()

    def __repr__(self):
        return (f'StabilizerLevel(point={self.point}, '
                f'orbit_size={self.orbit_size()}, gens={len(self.gens)})')

    def fixes_prefix(self, g):
        return all(g[a] == a for a in self.prefix)

    def generators(self):
        return [g for g, g_inv in self.gens]

    def add_generator(self, gen):
        """Add a generator if it fixes the prefix.

        Returns whether the generator was accepted.
        """
        if not self.fixes_prefix(gen):
            return False
        self.gens.append((gen, inv_perm(gen)))
        self.rebuild_schreier_tree()
        return True

    def rebuild_schreier_tree(self):
        """Rebuild the Schreier tree for the orbit containing point.
        """
        self.tree = {self.point: None}
        queue = [self.point]

        while queue:
            a = queue.pop(0)
            for i, (gen, gen_inv) in enumerate(self.gens):
                b = gen[a]
                if b not in self.tree:
                    self.tree[b] = i
                    queue.append(b)

    def orbit(self):
        return sorted(self.tree)

    def orbit_size(self):
        return len(self.tree)

    def contains_point(self, a):
        return a in self.tree

    def path_to_point(self, a):
        """Return the tree element r with r[point] == a.
        """
        if a not in self.tree:
            raise NotInOrbit("a not in point's orbit")

        r = self.id
        while a != self.point:
            gen, gen_inv = self.gens[self.tree[a]]
            r = compose_perm(r, gen)
            self.cfg.stats.products += 1
            a = gen_inv[a]

        return r

    def representative(self, g):
        """Return the coset representative for g.

        The representative sends point to g[point]. If that image is not in
        the orbit the identity is returned.
        """
        a = g[self.point]
        try:
            return self.path_to_point(a)
        except NotInOrbit:
            logger.debug(
                'image %d of point %d is not in its orbit', a, self.point)
            return self.id

    def transversal(self):
        """Return a dictionary mapping each orbit point to its representative.
        """
        return {a: self.path_to_point(a) for a in self.orbit()}

    def schreier_generators(self):
        """Yield the Schreier generators for the stabilizer of point.
        """
        transversal = self.transversal()
        for gen, gen_inv in self.gens:
            for a, u in transversal.items():
                su = compose_perm(gen, u)
                self.cfg.stats.products += 2
                yield compose_perm(inv_perm(transversal[gen[a]]), su)


def strip(levels, g):
    """Sift g through a list of stabilizer levels.

    Returns the identity if g is explained by the levels, otherwise the
    residue left when the first level could not map the image of its point
    back.
    """
    residue = g
    for level in levels:
        if not level.contains_point(residue[level.point]):
            return residue
        r = level.representative(residue)
        residue = compose_perm(inv_perm(r), residue)
        level.cfg.stats.products += 1
    return residue


class StabilizerChain:
    """Stabilizer chain of a group for the base 0..n-1.

    Built from the current generators of the group. It is only valid as long
    as the group's generator list doesn't change.
    """
    def __init__(self, group, cfg=None):
        self.cfg = cfg or group.cfg
        self.n = group.num_points()
        self.levels = [
            StabilizerLevel(group, range(i), i, self.cfg)
            for i in range(self.n)]

    def __len__(self):
        return len(self.levels)

    def __iter__(self):
        return iter(self.levels)

    def __getitem__(self, i):
        return self.levels[i]

    def base(self):
        return [level.point for level in self.levels]

    def orbit_sizes(self):
        return [level.orbit_size() for level in self.levels]

    def order(self):
        """Compute the order of the group.

        Only correct if the chain was built from a strong generating set.
        """
        return math.prod(self.orbit_sizes())

    def strip(self, g):
        return strip(self.levels, g)

    def contains(self, g):
        """Return whether g sifts to the identity.
        """
        g = make_perm(g)
        if len(g) != self.n:
            raise ValueError(
                f'permutation of degree {len(g)} in a group of degree '
                f'{self.n}')
        return is_id_perm(self.strip(g))

    def random_element(self):
        """Return a random group element.

        Uniform if the chain was built from a strong generating set.
        """
        g = id_perm(self.n)
        for level in self.levels:
            a = self.cfg.rng.choice(level.orbit())
            g = compose_perm(g, level.path_to_point(a))
            self.cfg.stats.products += 1
        return g


def random_schreier_sims(group, cfg=None):
    """Extend the generators of group to a strong generating set.

    Random elements are sifted through a freshly built stabilizer chain and
    every non-trivial residue is appended to the group's generators. Stops
    after cfg.exit_rounds (default: the degree) consecutive elements sifted to
    the identity.

    Returns the number of added generators.
    """
    cfg = cfg or group.cfg
    exit_rounds = cfg.exit_rounds
    if exit_rounds is None:
        exit_rounds = group.num_points()

    rng = ProductReplacer(group, cfg)

    added = 0
    stationary_rounds = 0
    while stationary_rounds < exit_rounds:
        cfg.stats.rounds += 1
        chain = StabilizerChain(group, cfg)
        residue = chain.strip(rng.draw())
        if is_id_perm(residue):
            stationary_rounds += 1
            continue

        logger.debug('adding strong generator %s', fmt_perm(residue))
        group.add_gen(residue)
        # new strong generators also feed the product replacement
        rng.add_gen(residue)
        added += 1
        stationary_rounds = 0

    logger.debug(
        'random Schreier-Sims finished after %d rounds with %d generators',
        cfg.stats.rounds, len(group.generators()))
    return added


def size(group, cfg=None):
    """Compute the order of the group from its current generators.
    """
    return StabilizerChain(group, cfg).order()


def contains(group, g, cfg=None):
    """Return whether g is a member of the group.

    Only reliable once the generators form a strong generating set.
    """
    return StabilizerChain(group, cfg).contains(g)


def verify(group, cfg=None):
    """Check the strong generating set by sifting all Schreier generators.

    Every Schreier generator of a level is sifted through the levels below it.
    Raises an IncompleteStrongGeneratingSet exception if verification fails.
    """
    chain = StabilizerChain(group, cfg)
    for i, level in enumerate(chain.levels):
        for schreier_gen in level.schreier_generators():
            residue = strip(chain.levels[i + 1:], schreier_gen)
            if not is_id_perm(residue):
                raise IncompleteStrongGeneratingSet(
                    "incomplete strong generating set detected"
                    " while sifting Schreier generators",
                    witness=residue)


def build_verified(group, cfg=None):
    """Run random_schreier_sims until verification succeeds.

    Returns the number of verification failures.
    """
    failures = 0
    random_schreier_sims(group, cfg)
    while True:
        try:
            verify(group, cfg)
        except IncompleteStrongGeneratingSet as e:
            failures += 1
            logger.debug('verification failed, witness %s',
                         fmt_perm(e.witness))
            group.add_gen(e.witness)
            random_schreier_sims(group, cfg)
        else:
            break
    return failures
