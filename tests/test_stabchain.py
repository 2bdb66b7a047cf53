import math
from random import Random

import pytest

from randomsims import (
    RUBIKS_ORDER, Config, Group, IncompleteStrongGeneratingSet, NotInOrbit,
    StabilizerChain, StabilizerLevel, build_verified, contains, cycle_perm,
    cyclic, id_perm, is_id_perm, mult_perms, parse_perm, random_schreier_sims,
    rubiks, size, strip, symmetric, verify)


def s4_sgs(cfg=None):
    """Strong generating set of the symmetric group on 0..3 for base 0..3.
    """
    return Group(
        [parse_perm(s, 4) for s in ['(0 1 2 3)', '(0 1)', '(1 2 3)', '(2 3)']],
        cfg)


def test_representative():
    level = StabilizerLevel(s4_sgs(), (), 0)
    c4 = parse_perm('(0 1 2 3)')
    t01 = parse_perm('(0 1)', 4)
    t02 = parse_perm('(0 2)', 4)

    assert level.representative(c4) == level.representative(t01)
    assert level.representative(c4) != level.representative(t02)
    assert level.representative(c4)[0] == 1
    assert level.representative(t02)[0] == 2
    assert level.representative(id_perm(4)) == id_perm(4)
    for a, u in level.transversal().items():
        assert u[0] == a


def test_level_filters_prefix():
    G = s4_sgs()
    level = StabilizerLevel(G, [0], 1)
    assert level.generators() == [
        parse_perm('(1 2 3)', 4), parse_perm('(2 3)', 4)]
    assert level.orbit() == [1, 2, 3]
    assert level.orbit_size() == 3

    level = StabilizerLevel(G, [0, 1, 2], 3)
    assert level.generators() == []
    assert level.orbit_size() == 1


def test_level_add_generator():
    G = Group([parse_perm('(0 1)', 5)])
    level = StabilizerLevel(G, [0], 1)
    assert level.orbit_size() == 1
    assert not level.add_generator(parse_perm('(0 2)', 5))
    assert level.orbit_size() == 1
    assert level.add_generator(parse_perm('(1 2 3)', 5))
    assert level.orbit() == [1, 2, 3]
    assert not level.contains_point(4)


def test_representative_unreached():
    G = Group([parse_perm('(0 1)', 4)])
    level = StabilizerLevel(G, (), 0)
    g = parse_perm('(0 2)', 4)
    assert level.representative(g) == id_perm(4)
    with pytest.raises(NotInOrbit):
        level.path_to_point(2)


def test_strip_sgs():
    chain = StabilizerChain(s4_sgs())
    for s in ['(0 3)', '(1 2 3)', '(0 2 3)', '(3 1 2)', '(0 1)(2 3)', '()']:
        assert is_id_perm(chain.strip(parse_perm(s, 4)))


def test_strip_residue():
    G = Group([parse_perm('(0 1 2 3)')])
    chain = StabilizerChain(G)
    g = parse_perm('(0 1)', 4)
    residue = chain.strip(g)
    assert not is_id_perm(residue)
    assert residue[0] == 0
    assert not chain.contains(g)
    assert strip([], g) == g


def test_order_sgs():
    chain = StabilizerChain(s4_sgs())
    assert chain.base() == [0, 1, 2, 3]
    assert chain.orbit_sizes() == [4, 3, 2, 1]
    assert chain.order() == 24
    assert size(s4_sgs()) == 24


def test_contains():
    G = s4_sgs()
    chain = StabilizerChain(G)
    assert chain.contains(parse_perm('(0 2)(1 3)'))
    assert contains(G, (3, 2, 1, 0))
    with pytest.raises(ValueError):
        chain.contains(id_perm(5))

    G = Group([parse_perm('(0 1 2)', 4), parse_perm('(1 2 3)')])
    build_verified(G, Config(rng=Random(0)))
    assert size(G) == 12
    assert contains(G, parse_perm('(0 1)(2 3)'))
    assert not contains(G, parse_perm('(0 1)', 4))


def test_random_element():
    G = s4_sgs(Config(rng=Random(3)))
    chain = StabilizerChain(G)
    samples = {chain.random_element() for _ in range(500)}
    assert len(samples) == 24


def test_driver_cyclic():
    for n in range(1, 8):
        G = cyclic(n, Config(rng=Random(n)))
        random_schreier_sims(G)
        assert size(G) == n


def test_driver_symmetric():
    cfg = Config(rng=Random(12))
    G = symmetric(12, cfg)
    gens = len(G.generators())
    added = random_schreier_sims(G)
    assert len(G.generators()) == gens + added
    assert size(G) == math.factorial(12) == 479001600
    assert cfg.stats.rounds >= 12


def test_driver_rubiks():
    G = rubiks(Config(rng=Random(49)))
    random_schreier_sims(G)
    assert size(G) == RUBIKS_ORDER
    chain = StabilizerChain(G)
    for _ in range(5):
        assert chain.contains(chain.random_element())
    assert contains(G, mult_perms(G.generators()[:6]))
    assert not contains(G, parse_perm('(2 47)', 49))
    assert not contains(G, parse_perm('(1 9 46)', 49))


def test_exit_rounds():
    cfg = Config(rng=Random(0), exit_rounds=3)
    G = symmetric(6, cfg)
    random_schreier_sims(G)
    assert cfg.stats.rounds >= 3


def test_exit_after_degree_identities():
    cfg = Config(rng=Random(0))
    G = Group([id_perm(5)], cfg)
    assert random_schreier_sims(G) == 0
    assert cfg.stats.rounds == 5
    assert G.generators() == [id_perm(5)]


def test_exit_counter_resets(monkeypatch):
    sifted = []
    chain_strip = StabilizerChain.strip

    def recording_strip(self, g):
        residue = chain_strip(self, g)
        sifted.append(is_id_perm(residue))
        return residue

    monkeypatch.setattr(StabilizerChain, 'strip', recording_strip)

    cfg = Config(rng=Random(6))
    G = symmetric(6, cfg)
    added = random_schreier_sims(G)

    n = G.num_points()
    assert len(sifted) == cfg.stats.rounds
    assert sifted.count(False) == added
    assert sifted[-n:] == [True] * n
    assert len(sifted) == n or not sifted[-n - 1]
    run = 0
    for ok in sifted[:-n]:
        run = run + 1 if ok else 0
        assert run < n


def test_verify():
    G = Group([parse_perm('(0 1 2 3)'), parse_perm('(0 1)', 4)])
    assert size(G) == 4
    with pytest.raises(IncompleteStrongGeneratingSet) as e:
        verify(G)
    witness = e.value.witness
    assert witness[0] == 0
    assert not is_id_perm(witness)

    verify(s4_sgs())


def test_build_verified():
    G = symmetric(6, Config(rng=Random(6), exit_rounds=1))
    failures = build_verified(G)
    assert failures >= 0
    verify(G)
    assert size(G) == 720


def test_cycle_perm_in_chain():
    G = Group([cycle_perm(5, [0, 1, 2, 3, 4]), cycle_perm(5, [0, 1])])
    build_verified(G, Config(rng=Random(5)))
    assert size(G) == 120
