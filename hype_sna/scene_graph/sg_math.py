"""Transform and rotation helpers.

Montreal data stores vectors as (x, z, y) and rotations as 3x3 column bases
in a left-handed convention. Everything produced by the decoders is in the
output convention: Y up, quaternions as (x, y, z, w).

A Transform is a 3x3 basis (rows) plus an origin. Scaling is applied after
rotation: basis = diag(scale) @ rotation.
"""

import math

import numpy as np

EPSILON = 1.1920929e-07  # float32 epsilon, matches the runtime's comparisons

IDENTITY_QUATERNION = (0.0, 0.0, 0.0, 1.0)
IDENTITY_COLUMNS = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))


class Transform:
    """Affine transform: 3x3 basis (row-major numpy array) and origin."""

    __slots__ = ('basis', 'origin')

    def __init__(self, basis=None, origin=None):
        self.basis = np.identity(3) if basis is None else np.asarray(basis, dtype=np.float64)
        self.origin = np.zeros(3) if origin is None else np.asarray(origin, dtype=np.float64)

    @classmethod
    def identity(cls):
        return cls()

    @classmethod
    def from_quaternion(cls, quaternion, scale=(1.0, 1.0, 1.0), origin=(0.0, 0.0, 0.0)):
        basis = np.diag(np.asarray(scale, dtype=np.float64)) @ quaternion_to_matrix(quaternion)
        return cls(basis, origin)

    @classmethod
    def from_translation(cls, origin):
        return cls(None, origin)

    def __mul__(self, other):
        return Transform(self.basis @ other.basis, self.basis @ other.origin + self.origin)

    def __repr__(self):
        return f"Transform(origin={self.position}, det={self.determinant():.4f})"

    def determinant(self):
        return float(np.linalg.det(self.basis))

    @property
    def position(self):
        return tuple(float(v) for v in self.origin)

    def xform(self, point):
        return tuple(float(v) for v in self.basis @ np.asarray(point, dtype=np.float64) + self.origin)

    def is_identity(self, tolerance=1e-6):
        return (np.allclose(self.basis, np.identity(3), atol=tolerance)
                and np.allclose(self.origin, 0.0, atol=tolerance))

    def isclose(self, other, tolerance=1e-5):
        return (np.allclose(self.basis, other.basis, atol=tolerance)
                and np.allclose(self.origin, other.origin, atol=tolerance))

    def to_matrix4(self):
        """Row-major 4x4 matrix as a tuple of 16 floats."""
        m = np.identity(4)
        m[:3, :3] = self.basis
        m[:3, 3] = self.origin
        return tuple(float(v) for v in m.flatten())


def normalize_quaternion(q):
    x, y, z, w = q
    length = math.sqrt(x * x + y * y + z * z + w * w)
    if length <= EPSILON:
        return IDENTITY_QUATERNION
    return (x / length, y / length, z / length, w / length)


def quaternion_to_matrix(q):
    """Rotation matrix (rows) of a unit quaternion (x, y, z, w)."""
    x, y, z, w = normalize_quaternion(q)
    xx, yy, zz = x * x, y * y, z * z
    xy, xz, yz = x * y, x * z, y * z
    wx, wy, wz = w * x, w * y, w * z
    return np.array([
        [1.0 - 2.0 * (yy + zz), 2.0 * (xy - wz), 2.0 * (xz + wy)],
        [2.0 * (xy + wz), 1.0 - 2.0 * (xx + zz), 2.0 * (yz - wx)],
        [2.0 * (xz - wy), 2.0 * (yz + wx), 1.0 - 2.0 * (xx + yy)],
    ])


def columns_to_quaternion(col0, col1, col2, convert_axes=True):
    """Quaternion of a 3x3 rotation given as source-engine columns.

    Largest-diagonal-term extraction with W negated. With convert_axes the
    result is remapped to the output convention as (x, z, y, -w).
    """
    m00, m10, m20 = col0
    m01, m11, m21 = col1
    m02, m12, m22 = col2

    if m22 < 0.0:
        if m00 > m11:
            t = 1.0 + m00 - m11 - m22
            q = (t, m01 + m10, m20 + m02, m12 - m21)
        else:
            t = 1.0 - m00 + m11 - m22
            q = (m01 + m10, t, m12 + m21, m20 - m02)
    else:
        if m00 < -m11:
            t = 1.0 - m00 - m11 + m22
            q = (m20 + m02, m12 + m21, t, m01 - m10)
        else:
            t = 1.0 + m00 + m11 + m22
            q = (m12 - m21, m20 - m02, m01 - m10, t)

    if t <= EPSILON:
        return IDENTITY_QUATERNION

    f = 0.5 / math.sqrt(t)
    x, y, z, w = q[0] * f, q[1] * f, q[2] * f, q[3] * -f
    if not convert_axes:
        return normalize_quaternion((x, y, z, w))
    return normalize_quaternion((x, z, y, -w))


def quaternion_to_columns(q):
    """Source-engine rotation columns of a quaternion (x, y, z, w).

    Zero-length input gives the identity columns.
    """
    x, y, z, w = q
    magnitude = math.sqrt(x * x + y * y + z * z + w * w)
    if magnitude <= EPSILON:
        return IDENTITY_COLUMNS
    x, y, z, w = x / magnitude, y / magnitude, z / magnitude, w / magnitude

    two_x, two_y, two_z = 2.0 * x, 2.0 * y, 2.0 * z
    xw, yw, zw = two_x * w, two_y * w, two_z * w
    xx = two_x * x
    yx, zx = two_y * x, two_z * x
    yy = two_y * y
    zy = two_z * y
    zz = two_z * z

    m00 = 1.0 - (zz + yy)
    m01 = yx + zw
    m02 = zx - yw
    m10 = yx - zw
    m11 = 1.0 - (zz + xx)
    m12 = zy + xw
    m20 = zx + yw
    m21 = zy - xw
    m22 = 1.0 - (yy + xx)
    return ((m00, m10, m20), (m01, m11, m21), (m02, m12, m22))


def signed_scale(scale_column, rotation_column):
    """Length of a scale column, negative when it opposes its rotation column."""
    magnitude = math.sqrt(sum(c * c for c in scale_column))
    if magnitude <= EPSILON:
        return 0.0
    dot = sum(a * b for a, b in zip(scale_column, rotation_column))
    if abs(dot) <= EPSILON:
        return magnitude
    return -magnitude if dot < 0.0 else magnitude


# --- Vector helpers for mesh decoding ---

def vec_sub(a, b):
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def vec_add(a, b):
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def vec_dot(a, b):
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def vec_cross(a, b):
    return (a[1] * b[2] - a[2] * b[1],
            a[2] * b[0] - a[0] * b[2],
            a[0] * b[1] - a[1] * b[0])


def vec_length_squared(a):
    return a[0] * a[0] + a[1] * a[1] + a[2] * a[2]


def vec_normalized(a):
    length = math.sqrt(vec_length_squared(a))
    if length == 0.0:
        return (0.0, 0.0, 0.0)
    return (a[0] / length, a[1] / length, a[2] / length)
