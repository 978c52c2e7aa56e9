from correlator.alerts.levels import Canonicalizer, LevelSource, parse_level_sources
from tests.helpers.factory import make_alert

def test_signed_and_unsigned_are_the_same_level():
    canon = Canonicalizer()
    up = canon(make_alert(group="G", fib_level="1.29"))
    down = canon(make_alert(group="H", level="-1.29"))
    assert up.values == frozenset({1.29, -1.29})
    assert up.values == down.values
    assert up.intersects(down)
    assert up.signed == 1.29 and down.signed == -1.29

def test_fixed_level_group_and_groups_without_levels():
    canon = Canonicalizer()
    f = canon(make_alert(group="F"))
    assert f.values == frozenset({1.3, -1.3})
    assert f.text == "1.30"
    assert not canon(make_alert(group="A", level="1.29"))

def test_unparseable_level_is_empty():
    canon = Canonicalizer()
    assert not canon(make_alert(group="G", fib_level="abc"))
    assert not canon(make_alert(group="G"))
    assert not canon(make_alert(group="H", level="nan"))

def test_trailing_zeros_do_not_matter():
    canon = Canonicalizer()
    assert canon(make_alert(group="G", fib_level="1.3")).values == canon(make_alert(group="F")).values

def test_parse_level_sources():
    sources = parse_level_sources({"G": "fib", "Z": {"fixed": 2}, "bad": 5})
    assert sources == {"G": LevelSource(attribute="fib"), "Z": LevelSource(fixed="2")}
    canon = Canonicalizer(sources)
    assert canon(make_alert(group="Z")).values == frozenset({2.0, -2.0})
    assert canon(make_alert(group="G", fib="0.618")).magnitude == 0.618
    # empty config falls back to the defaults
    assert "F" in parse_level_sources(None)
