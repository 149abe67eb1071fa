"""
Shared fixtures: synthetic snapshot blocks and merger trees.
"""

import h5py
import numpy as np
import pytest


@pytest.fixture
def write_gadget_hdf5():
    """Factory writing a minimal Gadget HDF5 block file."""

    def _write(path, positions, masses=None, box_size=100.0, particle_mass=1.0,
               particle_type=1, redshift=0.0):
        positions = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
        mass_table = np.zeros(6)
        if masses is None:
            mass_table[particle_type] = particle_mass

        with h5py.File(path, 'w') as f:
            header = f.create_group('Header')
            header.attrs['BoxSize'] = box_size
            header.attrs['Redshift'] = redshift
            header.attrs['MassTable'] = mass_table
            npart = np.zeros(6, dtype=np.int64)
            npart[particle_type] = len(positions)
            header.attrs['NumPart_ThisFile'] = npart

            group = f.create_group(f'PartType{particle_type}')
            group.create_dataset('Coordinates', data=positions)
            if masses is not None:
                group.create_dataset('Masses', data=np.asarray(masses, dtype=np.float32))
        return path

    return _write


@pytest.fixture
def write_lgadget2():
    """Factory writing a minimal LGadget-2 binary block file."""

    def _write(path, positions, particle_mass=1.0, box_size=100.0, byte_order='<',
               redshift=0.5):
        from shellfish.data.snapshots import _lgadget2_header_dtype

        positions = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
        header_dtype = _lgadget2_header_dtype(byte_order)
        header = np.zeros(1, dtype=header_dtype)
        header['npart'][0, 1] = len(positions)
        header['npart_total'][0, 1] = len(positions)
        header['mass'][0, 1] = particle_mass
        header['redshift'] = redshift
        header['box_size'] = box_size
        header['num_files'] = 1

        marker = np.dtype(byte_order + 'i4')
        pos_bytes = positions.astype(byte_order + 'f4').tobytes()

        with open(path, 'wb') as f:
            f.write(np.array([header_dtype.itemsize], dtype=marker).tobytes())
            f.write(header.tobytes())
            f.write(np.array([header_dtype.itemsize], dtype=marker).tobytes())
            f.write(np.array([len(pos_bytes)], dtype=marker).tobytes())
            f.write(pos_bytes)
            f.write(np.array([len(pos_bytes)], dtype=marker).tobytes())
        return path

    return _write


TREE_HEADER = (
    "#scale(0) id(1) desc_scale(2) desc_id(3) num_prog(4) pid(5) upid(6) "
    "mmp?(14) Orig_halo_ID(30) Snap_num(31)\n"
)


def tree_row(tree_id, desc_id, mmp, halo_id, snap):
    cols = ['0'] * 32
    cols[0] = '1.0'
    cols[1] = str(tree_id)
    cols[3] = str(desc_id)
    cols[14] = str(mmp)
    cols[30] = str(halo_id)
    cols[31] = str(snap)
    return ' '.join(cols) + '\n'


@pytest.fixture
def tree_dir(tmp_path):
    """
    Directory with one consistent-trees file.

    Halo 5 (snapshot 10) has main progenitor 3 (snapshot 9) and a minor
    progenitor 4. Halo 7 (snapshot 10) has no progenitors.
    """
    directory = tmp_path / 'trees'
    directory.mkdir()

    with open(directory / 'tree_0_0_0.dat', 'w') as f:
        f.write(TREE_HEADER)
        f.write("2\n")
        f.write("#tree 100\n")
        f.write(tree_row(100, -1, 1, 5, 10))
        f.write(tree_row(101, 100, 1, 3, 9))
        f.write(tree_row(102, 100, 0, 4, 9))
        f.write(tree_row(103, 101, 1, 2, 8))
        f.write("#tree 200\n")
        f.write(tree_row(200, -1, 1, 7, 10))

    (directory / 'locations.dat').write_text("# not a tree\n")
    return directory
