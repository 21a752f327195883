"""
Tests for the instrument-independent pieces: registry, marker searches,
configuration store and channel bitmasks.
"""

import pytest

from benchkit import (
    ChannelStore,
    ConfigurationError,
    DeviceError,
    Domain,
    DuplicateCategoryError,
    DuplicateKindError,
    InvalidChannelCountError,
    Polarity,
    Registry,
    RegistryFrozenError,
    SearchResult,
    SearchStatus,
    UnknownCategoryError,
    UnknownChannelError,
    build_marker_search,
    build_registry,
    decode_channel_mask,
    encode_channel_mask,
    parse_si,
)
from benchkit.search import MarkerSearch, execute_searches
from benchkit.util import breakpoints, seconds_to_ms
from benchkit.vna import VNA_REGISTRY


@pytest.fixture
def registry():
    return build_registry(
        'Test',
        [
            ('Format', Domain.ENUMERATION, ''),
            ('Marker', Domain.FLAG, ''),
            ('IFBandwidth', Domain.SCALAR, ''),
            ('Windows', Domain.LAYOUT, ''),
        ],
        [
            ('LogMagnitude', 'Format'),
            ('Phase', 'Format'),
        ],
    )


class TestRegistry:
    """Test category/kind declaration and validation."""

    def test_declare_kind_returns_handle(self):
        reg = Registry('r')
        fmt = reg.declare_category('Format', Domain.ENUMERATION)
        kind = reg.declare_kind('Smith', fmt)
        assert kind.category is fmt
        assert reg.kind('Smith') == kind
        assert str(kind) == 'Smith'

    def test_unknown_category(self):
        reg = Registry('r')
        with pytest.raises(UnknownCategoryError):
            reg.declare_kind('Smith', 'Format')

    def test_duplicate_kind(self):
        reg = Registry('r')
        reg.declare_category('Format', Domain.ENUMERATION)
        reg.declare_category('Parameter', Domain.ENUMERATION)
        reg.declare_kind('S11', 'Parameter')
        with pytest.raises(DuplicateKindError):
            reg.declare_kind('S11', 'Parameter')
        # Kind names are unique across categories too
        with pytest.raises(DuplicateKindError):
            reg.declare_kind('S11', 'Format')

    def test_duplicate_category(self):
        reg = Registry('r')
        reg.declare_category('Format', Domain.ENUMERATION)
        with pytest.raises(DuplicateCategoryError):
            reg.declare_category('Format', Domain.SCALAR)

    def test_kinds_only_for_enumerations(self):
        reg = Registry('r')
        reg.declare_category('IFBandwidth', Domain.SCALAR)
        with pytest.raises(ConfigurationError):
            reg.declare_kind('Wide', 'IFBandwidth')

    def test_frozen_after_build(self, registry):
        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.declare_category('Parameter', Domain.ENUMERATION)
        with pytest.raises(RegistryFrozenError):
            registry.declare_kind('Smith', 'Format')

    def test_kinds_in_declaration_order(self, registry):
        assert [k.name for k in registry.kinds('Format')] == ['LogMagnitude', 'Phase']

    def test_extends_copies_parent(self, registry):
        child = build_registry('Child', [('Parameter', Domain.ENUMERATION, '')],
                               [('S11', 'Parameter')], extends=registry)
        assert 'LogMagnitude' in child
        assert child.kind('S11').category.name == 'Parameter'
        assert 'S11' not in registry

    def test_validate_enumeration(self, registry):
        assert registry.validate('Format', 'Phase') == registry['Phase']
        with pytest.raises(ConfigurationError):
            registry.validate('Format', 'S11')
        with pytest.raises(ConfigurationError):
            registry.validate('Format', 3)

    def test_validate_kind_from_other_category(self):
        # S11 is a real kind, just not a Format
        with pytest.raises(ConfigurationError):
            VNA_REGISTRY.validate('Format', VNA_REGISTRY['S11'])

    def test_validate_flag_and_scalar(self, registry):
        assert registry.validate('Marker', True) is True
        with pytest.raises(ConfigurationError):
            registry.validate('Marker', 1)
        assert registry.validate('IFBandwidth', 1e3) == 1e3
        with pytest.raises(ConfigurationError):
            registry.validate('IFBandwidth', True)
        with pytest.raises(ConfigurationError):
            registry.validate('IFBandwidth', '1kHz')

    def test_validate_layout(self, registry):
        assert registry.validate('Windows', [[1, 2], [3, 4]]) == ((1, 2), (3, 4))
        with pytest.raises(ConfigurationError):
            registry.validate('Windows', [[1, 2], [3]])
        with pytest.raises(ConfigurationError):
            registry.validate('Windows', [[2, 3]])
        with pytest.raises(ConfigurationError):
            registry.validate('Windows', [])

    def test_vna_registry_contents(self):
        formats = {k.name for k in VNA_REGISTRY.kinds('Format')}
        assert {'LogMagnitude', 'Smith', 'SmithAdmittance', 'Raw', 'Calibrated'} <= formats
        params = [k.name for k in VNA_REGISTRY.kinds('Parameter')]
        assert params == ['S11', 'S12', 'S21', 'S22']


class TestMarkerSearch:
    """Test marker search normalization."""

    def test_max_is_positive_global(self):
        for pol in Polarity:
            s = build_marker_search('Max', 1, 1, 1, 5.0, pol)
            assert s.kind == 'Global'
            assert s.polarity == Polarity.POSITIVE
            assert s.threshold == 0.0

    def test_min_is_negative_global(self):
        s = build_marker_search('Min', 2, 3, 4, 5.0, Polarity.POSITIVE)
        assert (s.kind, s.polarity, s.threshold) == ('Global', Polarity.NEGATIVE, 0.0)
        assert (s.channel, s.trace, s.marker) == (2, 3, 4)

    def test_bandwidth_keeps_threshold(self):
        s = build_marker_search('Bandwidth', 1, 1, 1, 3.0, Polarity.NEGATIVE)
        assert s.kind == 'Bandwidth'
        assert s.polarity == Polarity.BOTH
        assert s.threshold == 3.0

    def test_other_kinds_pass_through(self):
        s = build_marker_search('LeftTarget', 1, 2, 3, -6.0, Polarity.NEGATIVE)
        assert s == MarkerSearch('LeftTarget', 1, 2, 3, -6.0, Polarity.NEGATIVE)

    def test_unrecognized_kind_is_kept(self):
        s = build_marker_search('Notch', 1, 1, 1)
        assert s.kind == 'Notch'
        assert s.polarity == Polarity.BOTH

    def test_defaults(self):
        s = build_marker_search('Peak', 1, 1, 1)
        assert s.threshold == 0.0
        assert s.polarity == Polarity.BOTH

    @pytest.mark.parametrize('args', [(0, 1, 1), (1, -1, 1), (1, 1, 0)])
    def test_positive_indices(self, args):
        with pytest.raises(ValueError):
            build_marker_search('Peak', *args)


class _ScriptedInstrument:
    """Answers search() from a script of outcomes, one per marker number."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.seen = []

    def search(self, s):
        self.seen.append(s.marker)
        outcome = self.outcomes[s.marker]
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return SearchResult.not_found(s)
        return SearchResult(s, SearchStatus.FOUND, stimulus=outcome)


class TestExecuteSearches:
    """Test fan-out of several searches."""

    def test_not_found_in_the_middle(self):
        ins = _ScriptedInstrument({1: 1e9, 2: None, 3: 2e9})
        searches = [build_marker_search('Peak', 1, 1, m) for m in (1, 2, 3)]
        results = execute_searches(ins, *searches)
        assert [r.status for r in results] == [
            SearchStatus.FOUND, SearchStatus.NOT_FOUND, SearchStatus.FOUND
        ]
        assert results[0].stimulus == 1e9
        assert results[2].stimulus == 2e9

    def test_failure_does_not_stop_later_searches(self):
        err = DeviceError(None, -221, 'Settings conflict')
        ins = _ScriptedInstrument({1: err, 2: 1.5e9})
        results = execute_searches(ins, *(build_marker_search('Peak', 1, 1, m) for m in (1, 2)))
        assert ins.seen == [1, 2]
        assert results[0].status == SearchStatus.FAILED
        assert results[0].error is err
        assert results[1].found

    def test_unexpected_exception_is_isolated(self):
        err = ValueError('could not convert string to float')
        ins = _ScriptedInstrument({1: 1e9, 2: err, 3: 2e9})
        results = execute_searches(ins, *(build_marker_search('Peak', 1, 1, m) for m in (1, 2, 3)))
        assert ins.seen == [1, 2, 3]
        assert [r.status for r in results] == [
            SearchStatus.FOUND, SearchStatus.FAILED, SearchStatus.FOUND
        ]
        assert results[1].error is err

    def test_order_is_preserved(self):
        ins = _ScriptedInstrument({3: 1.0, 1: 2.0, 2: 3.0})
        execute_searches(ins, *(build_marker_search('Peak', 1, 1, m) for m in (3, 1, 2)))
        assert ins.seen == [3, 1, 2]


class TestChannelStore:
    """Test the per-channel configuration store."""

    def test_defaults_after_init(self, registry):
        store = ChannelStore(registry, {'Format': 'LogMagnitude', 'Marker': False})
        store.init_channels(2)
        assert store.channels == [1, 2]
        for ch in (1, 2):
            assert store.get_property(ch, 'Format') == registry['LogMagnitude']
            assert store.get_property(ch, 'Marker') is False

    @pytest.mark.parametrize('count', [0, -1])
    def test_invalid_count(self, registry, count):
        store = ChannelStore(registry)
        with pytest.raises(InvalidChannelCountError):
            store.init_channels(count)

    def test_set_then_get(self, registry):
        store = ChannelStore(registry)
        store.init_channels(1)
        store.set_property(1, 'IFBandwidth', 1e3)
        assert store.get_property(1, 'IFBandwidth') == 1e3

    def test_indexed_entries(self, registry):
        store = ChannelStore(registry)
        store.init_channels(1)
        store.set_property(1, 'Marker', True, index=(1, 3))
        assert store.get_property(1, 'Marker', index=(1, 3)) is True
        with pytest.raises(UnknownCategoryError):
            store.get_property(1, 'Marker', index=(1, 4))

    def test_unknown_channel(self, registry):
        store = ChannelStore(registry)
        store.init_channels(2)
        with pytest.raises(UnknownChannelError):
            store.get_property(3, 'Format')
        with pytest.raises(UnknownChannelError):
            store.set_property(3, 'Format', 'Phase')

    def test_unknown_category(self, registry):
        store = ChannelStore(registry)
        store.init_channels(1)
        with pytest.raises(UnknownCategoryError):
            store.get_property(1, 'Parameter')
        # Declared but never set, and no default
        with pytest.raises(UnknownCategoryError):
            store.get_property(1, 'IFBandwidth')

    def test_snapshot_is_a_copy(self, registry):
        store = ChannelStore(registry, {'Marker': False})
        store.init_channels(1)
        snap = store.snapshot(1)
        snap['Marker'] = True
        assert store.get_property(1, 'Marker') is False

    def test_clear_restores_defaults(self, registry):
        store = ChannelStore(registry, {'Marker': False})
        store.init_channels(1)
        store.set_property(1, 'Marker', True)
        store.set_property(1, 'IFBandwidth', 10.0)
        store.clear()
        assert store.get_property(1, 'Marker') is False
        with pytest.raises(UnknownCategoryError):
            store.get_property(1, 'IFBandwidth')


class TestChannelMask:
    """Test multi-channel bitmask encoding."""

    @pytest.mark.parametrize('channels, mask', [
        (set(), 0),
        ({1}, 1),
        ({1, 3}, 5),
        ({2, 4}, 10),
        ({1, 2, 3, 4}, 15),
    ])
    def test_known_masks(self, channels, mask):
        assert encode_channel_mask(channels) == mask
        assert decode_channel_mask(mask) == channels

    def test_order_and_duplicates(self):
        assert encode_channel_mask([4, 2]) == encode_channel_mask([2, 4, 4, 2]) == 10

    def test_large_channel_numbers(self):
        assert encode_channel_mask({1, 9}) == 0b100000001
        assert decode_channel_mask(0b100000001) == {1, 9}

    @pytest.mark.parametrize('bad', [0, -2, 1.5, True])
    def test_rejects_non_positive_integers(self, bad):
        with pytest.raises(ValueError):
            encode_channel_mask({bad})


class TestUtil:
    """Test SI parsing and numeric helpers."""

    def test_parse_si(self):
        assert parse_si('1.5GHz') == 1.5e9
        assert parse_si('10kHz') == 10e3
        assert parse_si('10K') == 10e3
        assert parse_si('2e9') == 2e9
        assert parse_si('500mV', unit='V') == pytest.approx(0.5)

    def test_parse_si_wrong_unit(self):
        with pytest.raises(ValueError, match="Expected unit"):
            parse_si('10V', unit='Hz')
        with pytest.raises(ValueError):
            parse_si('fast')

    def test_seconds_to_ms(self):
        assert seconds_to_ms(1.0) == 1000
        assert seconds_to_ms(0.001) == 1
        assert seconds_to_ms(0.0015) == 2
        assert seconds_to_ms(0) == 0

    def test_breakpoints(self):
        fs = breakpoints(1e9, 2e9, 3)
        assert list(fs) == pytest.approx([1.0e9, 1.25e9, 1.5e9, 1.75e9])
