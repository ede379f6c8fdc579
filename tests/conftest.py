"""
Shared test fixtures for the voxel WFC model tests.
"""
import sys
from pathlib import Path

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voxel_wfc.grid import GridIndex, Plane
from voxel_wfc.module import Module
from voxel_wfc.slot import Slot


@pytest.fixture
def world_plane():
    return Plane.world_xy()


@pytest.fixture
def cube_module():
    """Single-part module with all connectors indifferent."""
    return Module("cube", [(0, 0, 0)])


@pytest.fixture
def bar_module():
    """Two parts along X: connectors 0 and 9 are internal."""
    return Module("bar", [(0, 0, 0), (1, 0, 0)])


@pytest.fixture
def l_module():
    """Three-part L in the XY plane, symmetric under one mirror only."""
    return Module("ell", [(0, 0, 0), (1, 0, 0), (0, 1, 0)])


@pytest.fixture
def chiral_module():
    """Four-part chiral tetracube: no proper or improper symmetry."""
    return Module("screw", [(0, 0, 0), (1, 0, 0), (0, 1, 0), (0, 1, 1)])


@pytest.fixture
def floor_module():
    """Cube whose top and bottom are typed 'floor', sides indifferent."""
    return Module("slab", [(0, 0, 0)], connector_types={2: "floor", 5: "floor"})


@pytest.fixture
def ceiling_module():
    """Cube with only its bottom typed 'floor'."""
    return Module("ceiling", [(0, 0, 0)], connector_types={5: "floor"})


@pytest.fixture
def slot_row(world_plane):
    """Three slots in a row along X."""
    return [
        Slot(world_plane, GridIndex(x, 0, 0), (1.0, 1.0, 1.0), {"cube"})
        for x in range(3)
    ]


@pytest.fixture
def slot_block(world_plane):
    """A solid 3x3x3 block of slots centred on the origin."""
    return [
        Slot(world_plane, GridIndex(x, y, z), (1.0, 1.0, 1.0))
        for x in range(-1, 2)
        for y in range(-1, 2)
        for z in range(-1, 2)
    ]
