import math

import pytest

from hype_sna.scene_graph.sg_math import (
    IDENTITY_COLUMNS, Transform, columns_to_quaternion, normalize_quaternion,
    quaternion_to_columns, signed_scale,
)

QUARTER_TURN_Y = (0.0, math.sin(math.pi / 4), 0.0, math.cos(math.pi / 4))


def test_identity_columns_give_identity_quaternion():
    assert columns_to_quaternion(*IDENTITY_COLUMNS) == pytest.approx((0.0, 0.0, 0.0, 1.0))
    assert quaternion_to_columns((0.0, 0.0, 0.0, 0.0)) == IDENTITY_COLUMNS


def test_quaternion_rotation():
    transform = Transform.from_quaternion(QUARTER_TURN_Y)
    assert transform.xform((1.0, 0.0, 0.0)) == pytest.approx((0.0, 0.0, -1.0))


def test_scale_applies_after_rotation():
    transform = Transform.from_quaternion(QUARTER_TURN_Y, scale=(1.0, 1.0, 3.0))
    assert transform.xform((1.0, 0.0, 0.0)) == pytest.approx((0.0, 0.0, -3.0))
    assert transform.determinant() == pytest.approx(3.0)


def test_composition_applies_child_then_parent():
    parent = Transform.from_quaternion(QUARTER_TURN_Y, origin=(0.0, 0.0, 10.0))
    child = Transform.from_translation((1.0, 0.0, 0.0))
    world = parent * child
    assert world.position == pytest.approx((0.0, 0.0, 9.0))
    assert world.xform((0.0, 0.0, 0.0)) == pytest.approx(parent.xform(child.position))


def test_matrix4_layout():
    matrix = Transform.from_translation((1.0, 2.0, 3.0)).to_matrix4()
    assert len(matrix) == 16
    assert (matrix[3], matrix[7], matrix[11], matrix[15]) == (1.0, 2.0, 3.0, 1.0)


def test_normalize_quaternion():
    assert normalize_quaternion((0.0, 0.0, 0.0, 0.0)) == (0.0, 0.0, 0.0, 1.0)
    assert normalize_quaternion((0.0, 2.0, 0.0, 0.0)) == (0.0, 1.0, 0.0, 0.0)


@pytest.mark.parametrize("scale, rotation, expected", [
    ((2.0, 0.0, 0.0), (1.0, 0.0, 0.0), 2.0),
    ((-2.0, 0.0, 0.0), (1.0, 0.0, 0.0), -2.0),
    ((0.0, 3.0, 0.0), (1.0, 0.0, 0.0), 3.0),
    ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), 0.0),
])
def test_signed_scale(scale, rotation, expected):
    assert signed_scale(scale, rotation) == pytest.approx(expected)


def test_column_extraction_negates_w():
    x, y, z, w = QUARTER_TURN_Y
    columns = quaternion_to_columns(QUARTER_TURN_Y)
    assert columns_to_quaternion(*columns, convert_axes=False) == pytest.approx((x, y, z, -w))
