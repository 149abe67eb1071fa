"""
Tests for configuration loading and validation.
"""

import pytest

from shellfish.exceptions import ConfigValidationError


class TestProfConfig:
    """Tests for ProfConfig."""

    def test_defaults(self):
        from shellfish.config import ProfConfig

        config = ProfConfig.from_yaml(None)

        assert config.bins == 150
        assert config.r_max_mult == 3.0
        assert config.r_min_mult == 0.03

    def test_from_yaml(self, tmp_path):
        from shellfish.config import ProfConfig

        path = tmp_path / 'prof.yaml'
        path.write_text("bins: 40\nr_max_mult: 2.5\n")

        config = ProfConfig.from_yaml(path)

        assert config.bins == 40
        assert config.r_max_mult == 2.5
        assert config.r_min_mult == 0.03

    def test_empty_yaml_gives_defaults(self, tmp_path):
        from shellfish.config import ProfConfig

        path = tmp_path / 'prof.yaml'
        path.write_text("")

        assert ProfConfig.from_yaml(path) == ProfConfig()

    def test_missing_file_raises(self, tmp_path):
        from shellfish.config import ProfConfig

        with pytest.raises(ConfigValidationError):
            ProfConfig.from_yaml(tmp_path / 'missing.yaml')

    def test_unknown_key_raises(self):
        from shellfish.config import ProfConfig

        with pytest.raises(ConfigValidationError, match="nbins"):
            ProfConfig.from_dict({'nbins': 10})

    @pytest.mark.parametrize('values', [
        {'bins': 0},
        {'bins': -3},
        {'bins': True},
        {'bins': 2.5},
        {'r_min_mult': 0.0},
        {'r_max_mult': -1.0},
        {'r_min_mult': 3.0, 'r_max_mult': 3.0},
        {'r_min_mult': 4.0},
        {'r_min_mult': 'abc'},
        {'r_max_mult': None},
        {'bins': '10'},
    ])
    def test_invalid_values_raise(self, values):
        from shellfish.config import ProfConfig

        with pytest.raises(ConfigValidationError):
            ProfConfig.from_dict(values)

    def test_overrides_skip_none(self):
        from shellfish.config import ProfConfig

        config = ProfConfig().with_overrides(bins=20, r_max_mult=None)

        assert config.bins == 20
        assert config.r_max_mult == 3.0

    def test_overrides_are_validated(self):
        from shellfish.config import ProfConfig

        with pytest.raises(ConfigValidationError):
            ProfConfig().with_overrides(bins=0)


class TestGlobalConfig:
    """Tests for GlobalConfig."""

    def test_from_yaml(self, tmp_path):
        from shellfish.config import GlobalConfig

        path = tmp_path / 'global.yaml'
        path.write_text(
            "snapshot_type: lgadget-2\n"
            "snapshot_format: /sims/snap_{snap:03d}.{block}\n"
            "block_max: 7\n"
            "endianness: big\n"
            "tree_dir: /sims/trees\n"
        )

        config = GlobalConfig.from_yaml(path)

        assert config.snapshot_type == 'lgadget-2'
        assert config.block_min == 0
        assert config.block_max == 7
        assert config.endianness == 'big'
        assert config.snap_min is None

    def test_non_mapping_yaml_raises(self, tmp_path):
        from shellfish.config import GlobalConfig

        path = tmp_path / 'global.yaml'
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigValidationError, match="mapping"):
            GlobalConfig.from_yaml(path)

    @pytest.mark.parametrize('values', [
        {'snapshot_type': 'ramses'},
        {'endianness': 'middle'},
        {'block_min': 3, 'block_max': 2},
        {'block_min': -1},
        {'position_units': 0.0},
        {'mass_units': -1.0},
        {'snap_min': 10, 'snap_max': 5},
        {'mass_units': 'x'},
        {'position_units': [1.0]},
        {'block_max': '7'},
        {'snap_min': 2.5},
        {'memo_dir': 5},
    ])
    def test_invalid_values_raise(self, values):
        from shellfish.config import GlobalConfig

        with pytest.raises(ConfigValidationError):
            GlobalConfig.from_dict(values)

    def test_snapshot_range_override(self):
        from shellfish.config import GlobalConfig

        config = GlobalConfig(snap_min=2).with_overrides(snap_max=9)

        assert (config.snap_min, config.snap_max) == (2, 9)

        with pytest.raises(ConfigValidationError):
            config.with_overrides(snap_min=10)


class TestMemoFingerprint:
    """Tests for the memo-directory fingerprint."""

    def test_stable(self):
        from shellfish.config import GlobalConfig

        a = GlobalConfig(snapshot_format='snap_{snap}.{block}')
        b = GlobalConfig(snapshot_format='snap_{snap}.{block}')

        assert a.memo_fingerprint() == b.memo_fingerprint()

    def test_changes_with_block_layout(self):
        from shellfish.config import GlobalConfig

        base = GlobalConfig(snapshot_format='snap_{snap}.{block}')

        assert base.memo_fingerprint() != base.with_overrides(block_max=3).memo_fingerprint()
        assert base.memo_fingerprint() != base.with_overrides(
            snapshot_format='other_{snap}.{block}').memo_fingerprint()

    def test_ignores_tree_settings(self):
        """Tree settings do not affect cached headers."""
        from shellfish.config import GlobalConfig

        base = GlobalConfig(snapshot_format='snap_{snap}.{block}')
        changed = base.with_overrides(tree_dir='/trees', snap_min=1, snap_max=5, snap_offset=2)

        assert base.memo_fingerprint() == changed.memo_fingerprint()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
