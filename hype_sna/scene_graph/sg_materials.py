"""Material and texture reference extraction.

Record layouts (all little-endian, pointers relocated):

GameMaterial:
    ptr  visual_material    (-> VisualMaterial)
    ptr
    u32
    ptr

VisualMaterial:
    u32  flags              (bit 10 enables backface culling)
    f32  x16                (ambient/diffuse/specular/color)
    u32
    ptr  texture            (-> TextureInfo)

TextureInfo:
    u32, u32
    u32  flags
    u32  x8
    u32  alpha_mask
    u32  x2
    u32  x11
    char name[0x50]
    u8
    u8   flags_byte         (0x4 mirror U, 0x8 mirror V)

Textures are only referenced by normalised file name; pixel data lives in
the game's texture archives and is not read here.
"""

import logging

from ..diagnostics import guarded

_log = logging.getLogger("hype_sna.materials")

TEXTURE_NAME_LENGTH = 0x50

TEXTURE_FLAG_MIRROR_U = 0x4
TEXTURE_FLAG_MIRROR_V = 0x8

_GAMEDATA_PREFIXES = ("game\\gamedata\\", "gamedata\\")


class ParsedTextureInfo:
    """Texture reference read from a TextureInfo record."""

    __slots__ = ('flags', 'flags_byte', 'alpha_mask', 'name')

    def __init__(self):
        self.flags = 0
        self.flags_byte = 0
        self.alpha_mask = 0
        self.name = None        # normalised name, or None

    @property
    def mirror_u(self):
        return bool(self.flags_byte & TEXTURE_FLAG_MIRROR_U)

    @property
    def mirror_v(self):
        return bool(self.flags_byte & TEXTURE_FLAG_MIRROR_V)


class ParsedVisualMaterial:
    """Render flags plus the bound texture, if any."""

    __slots__ = ('flags', 'texture')

    def __init__(self):
        self.flags = 0
        self.texture = None     # ParsedTextureInfo or None

    def is_double_sided(self, backface_culling_flag=1 << 10):
        return not (self.flags & backface_culling_flag)

    @property
    def texture_name(self):
        return self.texture.name if self.texture is not None else None


class ParsedGameMaterial:
    __slots__ = ('visual',)

    def __init__(self):
        self.visual = None      # ParsedVisualMaterial or None


def normalize_texture_name(raw):
    """Normalise a texture path to the archive-relative .tga name.

    Separators become backslashes, leading separators and a leading
    gamedata\\ or game\\gamedata\\ are removed, and the .gf extension is
    mapped to .tga. Blank names give None.
    """
    if raw is None:
        return None
    name = raw.strip()
    if not name:
        return None
    name = name.replace("/", "\\").lstrip("\\")
    lowered = name.lower()
    for prefix in _GAMEDATA_PREFIXES:
        if lowered.startswith(prefix):
            name = name[len(prefix):]
            break
    if name.lower().endswith(".gf"):
        name = name[:-3] + ".tga"
    return name or None


class MaterialDecoder:
    """Decodes material records, caching each level by address.

    Failed records are cached as None so they are reported once.
    """

    def __init__(self, space, diagnostics):
        self.space = space
        self.diagnostics = diagnostics
        self._game_materials = {}
        self._visual_materials = {}
        self._textures = {}

    def parse_game_material(self, address):
        if address is None:
            return None
        if address in self._game_materials:
            return self._game_materials[address]
        material = guarded(self.diagnostics, f"GameMaterial {address}",
                           self._read_game_material, address)
        self._game_materials[address] = material
        return material

    def parse_visual_material(self, address):
        if address is None:
            return None
        if address in self._visual_materials:
            return self._visual_materials[address]
        material = guarded(self.diagnostics, f"VisualMaterial {address}",
                           self._read_visual_material, address)
        self._visual_materials[address] = material
        return material

    def parse_texture_info(self, address):
        if address is None:
            return None
        if address in self._textures:
            return self._textures[address]
        texture = guarded(self.diagnostics, f"TextureInfo {address}",
                          self._read_texture_info, address)
        self._textures[address] = texture
        return texture

    def visual_for_game_material(self, address):
        """Flattened VisualMaterial of a GameMaterial, or None."""
        game = self.parse_game_material(address)
        return game.visual if game is not None else None

    # ------------------------------------------------------------------

    def _read_game_material(self, address):
        reader = self.space.create_reader(address)
        visual_address = reader.read_pointer()
        reader.read_pointer()
        reader.read_u32()
        reader.read_pointer()

        material = ParsedGameMaterial()
        material.visual = self.parse_visual_material(visual_address)
        return material

    def _read_visual_material(self, address):
        reader = self.space.create_reader(address)
        material = ParsedVisualMaterial()
        material.flags = reader.read_u32()
        reader.skip(16 * 4)
        reader.read_u32()
        texture_address = reader.read_pointer()
        # a broken TextureInfo leaves the material usable without texture
        material.texture = self.parse_texture_info(texture_address)
        return material

    def _read_texture_info(self, address):
        reader = self.space.create_reader(address)
        texture = ParsedTextureInfo()
        reader.read_u32()
        reader.read_u32()
        texture.flags = reader.read_u32()
        reader.skip(8 * 4)
        texture.alpha_mask = reader.read_u32()
        reader.skip(2 * 4)
        reader.skip(11 * 4)
        texture.name = normalize_texture_name(reader.read_fixed_string(TEXTURE_NAME_LENGTH))
        reader.read_u8()
        texture.flags_byte = reader.read_u8()
        _log.debug("TextureInfo %s -> %s", address, texture.name)
        return texture
