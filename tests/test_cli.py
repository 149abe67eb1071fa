"""
End-to-end tests of the command line modes.
"""

import numpy as np
import pytest
import yaml


def read_rows(path):
    with open(path) as f:
        lines = f.read().splitlines()
    return lines[0], [line.split() for line in lines[1:]]


@pytest.fixture
def global_config(tmp_path, tree_dir, write_gadget_hdf5):
    """Global config pointing at a two-block snapshot 5 and the test trees."""
    rng = np.random.default_rng(2)
    snap_dir = tmp_path / 'snaps'
    snap_dir.mkdir()
    for block in range(2):
        positions = rng.uniform(0, 10, (3000, 3))
        positions[:, 0] += 10.0 * block
        write_gadget_hdf5(snap_dir / f'snap_005.{block}.hdf5', positions, box_size=20.0)

    path = tmp_path / 'global.yaml'
    with open(path, 'w') as f:
        yaml.safe_dump({
            'snapshot_type': 'gadget-hdf5',
            'snapshot_format': str(snap_dir / 'snap_{snap:03d}.{block}.hdf5'),
            'block_min': 0,
            'block_max': 1,
            'memo_dir': str(tmp_path / 'memo'),
            'tree_dir': str(tree_dir),
        }, f)
    return path


class TestTreeMode:
    """Tests for `shellfish tree`."""

    def test_histories(self, tmp_path, global_config):
        from shellfish.cli import main

        seeds = tmp_path / 'seeds.txt'
        seeds.write_text("# ID Snapshot\n5 10\n7 10\n")
        out = tmp_path / 'out.txt'

        code = main(['tree', '--config', str(global_config), '--input', str(seeds),
                     '--output', str(out)])

        assert code == 0
        header, rows = read_rows(out)
        assert header == '# ID(0) Snapshot(1)'
        assert rows == [['5', '10'], ['3', '9'], ['2', '8'], ['-1', '-1'], ['7', '10']]

    def test_snapshot_range(self, tmp_path, global_config):
        from shellfish.cli import main

        seeds = tmp_path / 'seeds.txt'
        seeds.write_text("5 10\n7 10\n")
        out = tmp_path / 'out.txt'

        code = main(['tree', '--config', str(global_config), '--input', str(seeds),
                     '--output', str(out), '--snap-min', '9'])

        assert code == 0
        _, rows = read_rows(out)
        assert rows == [['5', '10'], ['3', '9'], ['-1', '-1'], ['7', '10']]

    def test_config_from_environment(self, tmp_path, global_config, monkeypatch):
        from shellfish.cli import GLOBAL_CONFIG_ENV, main

        monkeypatch.setenv(GLOBAL_CONFIG_ENV, str(global_config))
        seeds = tmp_path / 'seeds.txt'
        seeds.write_text("7 10\n")
        out = tmp_path / 'out.txt'

        assert main(['tree', '--input', str(seeds), '--output', str(out)]) == 0
        _, rows = read_rows(out)
        assert rows == [['7', '10']]

    def test_empty_seeds_give_header_only(self, tmp_path):
        from shellfish.cli import main

        seeds = tmp_path / 'seeds.txt'
        seeds.write_text("# nothing\n")
        out = tmp_path / 'out.txt'

        assert main(['tree', '--input', str(seeds), '--output', str(out)]) == 0
        assert out.read_text() == '# ID(0) Snapshot(1)\n'

    def test_missing_tree_dir_fails(self, tmp_path, capsys):
        from shellfish.cli import main

        config = tmp_path / 'global.yaml'
        config.write_text(f"tree_dir: {tmp_path / 'missing'}\n")
        seeds = tmp_path / 'seeds.txt'
        seeds.write_text("5 10\n")

        code = main(['tree', '--config', str(config), '--input', str(seeds),
                     '--output', str(tmp_path / 'out.txt')])

        assert code == 1
        assert "Shellfish terminating." in capsys.readouterr().err
        assert not (tmp_path / 'out.txt').exists()


class TestProfMode:
    """Tests for `shellfish prof`."""

    def test_profiles(self, tmp_path, global_config):
        from shellfish.cli import main

        halos = tmp_path / 'halos.txt'
        halos.write_text(
            "1 5 5.0 5.0 5.0 1.0\n"
            "-1 -1\n"
            "2 5 15.0 5.0 5.0 1.5\n"
        )
        out = tmp_path / 'out.txt'

        code = main(['prof', '--config', str(global_config), '--input', str(halos),
                     '--output', str(out), '--bins', '4', '--log-level', 'WARNING'])

        assert code == 0
        header, rows = read_rows(out)
        assert header == '# ID(0) Snapshot(1) R [cMpc/h](2-5) Rho [h^2 Msun/cMpc^3](6-9)'
        assert len(rows) == 3
        assert all(len(row) == 10 for row in rows)

        assert rows[0][:2] == ['1', '5']
        assert rows[1] == ['-1'] * 10
        assert rows[2][:2] == ['2', '5']

        radii = np.array(rows[0][2:6], dtype=float)
        density = np.array(rows[0][6:], dtype=float)
        assert np.all(np.diff(radii) > 0)
        assert radii[0] > 0.03 and radii[-1] < 3.0
        assert np.all(density >= 0)
        assert (tmp_path / 'memo' / 'headers_0005.h5').exists()

    def test_mode_config_file(self, tmp_path, global_config):
        from shellfish.cli import main

        prof_config = tmp_path / 'prof.yaml'
        prof_config.write_text("bins: 3\nr_max_mult: 2.0\nr_min_mult: 0.1\n")
        halos = tmp_path / 'halos.txt'
        halos.write_text("1 5 5.0 5.0 5.0 1.0\n")
        out = tmp_path / 'out.txt'

        code = main(['prof', str(prof_config), '--config', str(global_config),
                     '--input', str(halos), '--output', str(out)])

        assert code == 0
        _, rows = read_rows(out)
        assert len(rows[0]) == 2 + 2 * 3

    def test_empty_input_fails(self, tmp_path, global_config, capsys):
        from shellfish.cli import main

        halos = tmp_path / 'halos.txt'
        halos.write_text("")

        code = main(['prof', '--config', str(global_config), '--input', str(halos),
                     '--output', str(tmp_path / 'out.txt')])

        assert code == 1
        err = capsys.readouterr().err
        assert "Error running mode prof" in err
        assert "No input IDs" in err

    def test_invalid_bins_fail(self, tmp_path, global_config):
        from shellfish.cli import main

        halos = tmp_path / 'halos.txt'
        halos.write_text("1 5 5.0 5.0 5.0 1.0\n")

        code = main(['prof', '--config', str(global_config), '--input', str(halos),
                     '--output', str(tmp_path / 'out.txt'), '--bins', '0'])

        assert code == 1

    def test_missing_snapshot_fails(self, tmp_path, global_config):
        from shellfish.cli import main

        halos = tmp_path / 'halos.txt'
        halos.write_text("1 6 5.0 5.0 5.0 1.0\n")

        code = main(['prof', '--config', str(global_config), '--input', str(halos),
                     '--output', str(tmp_path / 'out.txt')])

        assert code == 1

    def test_non_numeric_mode_config_fails(self, tmp_path, global_config, capsys):
        """A bad YAML value ends the run with the usual error message."""
        from shellfish.cli import main

        prof_config = tmp_path / 'prof.yaml'
        prof_config.write_text("r_min_mult: abc\n")
        halos = tmp_path / 'halos.txt'
        halos.write_text("1 5 5.0 5.0 5.0 1.0\n")

        code = main(['prof', str(prof_config), '--config', str(global_config),
                     '--input', str(halos), '--output', str(tmp_path / 'out.txt')])

        assert code == 1
        err = capsys.readouterr().err
        assert "Error running mode prof" in err
        assert "r_min_mult" in err


class FakeComm:
    """Communicator stand-in that records aborts."""

    def __init__(self):
        self.abort_codes = []

    def Abort(self, code):
        self.abort_codes.append(code)


class TestFailureUnderMPI:
    """Errors must bring down every rank, not only the one that failed."""

    def _run_failing_tree(self, tmp_path, monkeypatch, size):
        import shellfish.cli as cli

        comm = FakeComm()
        monkeypatch.setattr(cli, 'get_size', lambda comm=None: size)
        monkeypatch.setattr(cli, 'get_mpi_comm', lambda: comm)

        config = tmp_path / 'global.yaml'
        config.write_text(f"tree_dir: {tmp_path / 'missing'}\n")
        seeds = tmp_path / 'seeds.txt'
        seeds.write_text("5 10\n")

        code = cli.main(['tree', '--config', str(config), '--input', str(seeds),
                         '--output', str(tmp_path / 'out.txt')])
        return code, comm

    def test_error_aborts_communicator(self, tmp_path, monkeypatch):
        code, comm = self._run_failing_tree(tmp_path, monkeypatch, size=2)

        assert code == 1
        assert comm.abort_codes == [1]

    def test_single_process_does_not_abort(self, tmp_path, monkeypatch):
        code, comm = self._run_failing_tree(tmp_path, monkeypatch, size=1)

        assert code == 1
        assert comm.abort_codes == []


class TestVersion:
    def test_version(self, capsys):
        from shellfish import __version__
        from shellfish.cli import main

        assert main(['version']) == 0
        assert __version__ in capsys.readouterr().out


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
