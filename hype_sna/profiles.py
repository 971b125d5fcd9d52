"""Parse profiles for OpenSpace/Montreal engine builds.

Each supported game build has a ParseProfile describing the constants the
decoders rely on: whether block payloads use compressed framing, traversal
caps for corrupt graphs, the actor custom-bit meanings and a few record
offsets that drifted between engine revisions.

Profiles are registered in a global dict. The active profile can be passed
explicitly to every parse function or chosen through the HYPE_SNA_PROFILE
environment variable.

Adding a new build:
    1. Parse a level of the build with the closest existing profile
    2. Compare the diagnostics and relocation inspection counts
    3. Create a ParseProfile with the differing parameters
    4. Call register_profile() to add it to the registry
"""

import os
from dataclasses import dataclass, replace
from typing import Dict, List, Tuple


DEFAULT_PROFILE_ID = "hype_pc"
PROFILE_ENV_VAR = "HYPE_SNA_PROFILE"


@dataclass(frozen=True)
class ParseProfile:
    """Constants for one engine build."""

    profile_id: str
    name: str
    description: str = ""

    # Block payloads (SNA and relocation tables) carry the 20-byte
    # compressed framing header.
    sna_compression: bool = True

    # Traversal caps for malformed pointer graphs
    max_child_chain: int = 20000
    max_linked_list: int = 20000

    # Actor custom bits
    main_actor_bit: int = 0x80000000
    targetable_bit: int = 1 << 0

    # VisualMaterial flag bit enabling backface culling
    backface_culling_flag: int = 1 << 10

    # Offset of the character list head inside a Sector data record
    sector_character_list_offset: int = 28

    # Custom bits lookup: nested stdGame pointer offset, then the field
    # offsets tried in order (direct, legacy)
    custom_bits_pointer_offset: int = 4
    custom_bits_offsets: Tuple[int, ...] = (44, 36)

    # Layout of animation anchor placeholders
    anchor_grid_width: int = 12
    anchor_spacing: float = 1.5
    anchor_height: float = 2.0

    def with_overrides(self, **kwargs):
        return replace(self, **kwargs)


# ---------------------------------------------------------------------------
# Profile registry
# ---------------------------------------------------------------------------

_PROFILES: Dict[str, ParseProfile] = {}


def register_profile(profile):
    """Add a profile to the registry, replacing one with the same id."""
    _PROFILES[profile.profile_id] = profile


def get_profile(profile_id=None) -> ParseProfile:
    """Look up a profile by id.

    With no id, HYPE_SNA_PROFILE is consulted and then the default profile.
    Unknown ids raise KeyError.
    """
    if profile_id is None:
        profile_id = os.environ.get(PROFILE_ENV_VAR) or DEFAULT_PROFILE_ID
    try:
        return _PROFILES[profile_id]
    except KeyError:
        raise KeyError(f"Unknown parse profile '{profile_id}'") from None


def resolve_profile(profile) -> ParseProfile:
    """Accept a ParseProfile, a profile id or None."""
    if isinstance(profile, ParseProfile):
        return profile
    return get_profile(profile)


def get_profile_items() -> List[Tuple[str, str, str]]:
    """(id, name, description) triples for every registered profile."""
    return [(p.profile_id, p.name, p.description) for p in _PROFILES.values()]


register_profile(ParseProfile(
    profile_id="hype_pc",
    name="Hype: The Time Quest (PC)",
    description="Retail PC build, LZO-framed SNA and relocation tables",
))

register_profile(ParseProfile(
    profile_id="hype_pc_uncompressed",
    name="Hype: The Time Quest (PC, raw blocks)",
    description="Unpacked data dumps without the compressed block framing",
    sna_compression=False,
))
