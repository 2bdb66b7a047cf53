"""
Deterministic stabilizer chains built directly from Schreier's lemma.

Each stabilizer subgroup is generated by all Schreier generators of the
previous one, so the number of generators grows multiplicatively from level to
level. This is only useful for small groups and as a cross-check for the
randomized algorithm in randomsims.
"""


import logging
import math

from randomsims import (
    Group, StabilizerLevel, compose_perm, inv_perm, is_id_perm, make_perm,
    strip)

logger = logging.getLogger(__name__)


def stabilizer_of_point(group, point):
    """Return the subgroup of group fixing point.

    Its generators are the Schreier generators rep(u s)^-1 (u s) for every
    coset representative u and generator s. Identities and duplicates are
    dropped.
    """
    level = StabilizerLevel(group, (), point)

    gens = {}
    for u in level.transversal().values():
        for s in group.generators():
            us = compose_perm(s, u)
            r = level.representative(us)
            schreier_gen = compose_perm(inv_perm(r), us)
            group.cfg.stats.products += 2
            if not is_id_perm(schreier_gen):
                gens[schreier_gen] = None

    logger.debug(
        'stabilizer of %d: %d schreier generators from orbit of size %d',
        point, len(gens), level.orbit_size())

    return Group(list(gens) or [group.identity()], group.cfg)


class NaiveStabilizerChain:
    """Stabilizer chain for the base 0..n-1 using Schreier's lemma only.
    """
    def __init__(self, group):
        self.n = group.num_points()
        self.chain = [group]
        for i in range(self.n):
            self.chain.append(stabilizer_of_point(self.chain[-1], i))
        self.levels = [
            StabilizerLevel(g, range(i), i)
            for i, g in enumerate(self.chain[:-1])]

    def groups(self):
        return self.chain

    def base(self):
        return list(range(self.n))

    def size(self):
        """Compute the order of the group.
        """
        return math.prod(
            len(g.orbit(i)) for i, g in enumerate(self.chain[:-1]))

    def contains(self, p):
        """Return whether p strips to the identity through the chain.
        """
        p = make_perm(p)
        if len(p) != self.n:
            raise ValueError(
                f'permutation of degree {len(p)} in a group of degree '
                f'{self.n}')
        return is_id_perm(strip(self.levels, p))


def naive_stabilizer_chain(group):
    """Build the Schreier's lemma stabilizer chain of group for base 0..n-1.
    """
    return NaiveStabilizerChain(group)
