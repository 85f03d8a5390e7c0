"""
Time Hero - Game Values
=======================
Immutable, validated catalogs consumed by the simulation engine.

Raw rows (from spreadsheets, JSON, tests) are converted into frozen records
exactly once, at load time. The engine never sees untyped rows.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple


CROP_TIERS = ('early', 'mid', 'late', 'endgame')
DURATION_TIERS = ('short', 'medium', 'long')
MATERIALS = ('stone', 'copper', 'iron', 'silver', 'crystal', 'mythril', 'obsidian')


class ConfigurationError(ValueError):
    """Raised when a catalog row is malformed"""


class ReadOnlyMap(Mapping):
    """Insertion-ordered mapping that rejects writes (and pickles cleanly)"""

    def __init__(self, items: Any = ()):
        self._items = dict(items)

    def __getitem__(self, key):
        return self._items[key]

    def __iter__(self) -> Iterator:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ReadOnlyMap({self._items!r})"

    def __hash__(self):
        return hash(tuple(self._items.items()))


# ==================== Records ====================

@dataclass(frozen=True)
class Crop:
    """A plantable crop"""
    id: str
    name: str
    growth_time: float  # minutes
    energy_yield: float
    tier: str = 'early'
    unlock_day: int = 1
    seed_cost: float = 0.0

    @property
    def energy_per_minute(self) -> float:
        return self.energy_yield / self.growth_time


@dataclass(frozen=True)
class AdventureTier:
    """Energy cost and duration of one adventure length"""
    energy: float
    duration: int


@dataclass(frozen=True)
class Adventure:
    """An adventure route with three duration tiers"""
    id: str
    name: str
    tiers: ReadOnlyMap  # 'short'/'medium'/'long' -> AdventureTier
    gold_reward: float
    common_material: str = 'stone'
    common_amount: int = 1
    rare_material: Optional[str] = None
    rare_amount: int = 0
    boss_material: Optional[str] = None
    boss_amount: int = 0
    unlock_day: int = 1

    def tier(self, duration: str) -> Optional[AdventureTier]:
        return self.tiers.get(duration)


@dataclass(frozen=True)
class MiningLevel:
    """A mine depth"""
    depth: int
    name: str
    unlock_day: int = 1
    duration: int = 30


@dataclass(frozen=True)
class UpgradeCost:
    gold: float = 0.0
    energy: float = 0.0
    materials: ReadOnlyMap = field(default_factory=ReadOnlyMap)

    def as_dict(self) -> Dict[str, float]:
        costs = {'gold': self.gold, 'energy': self.energy}
        costs.update(self.materials)
        return costs


@dataclass(frozen=True)
class Upgrade:
    """A purchasable upgrade"""
    id: str
    name: str
    category: str
    cost: UpgradeCost
    effect: str = ''
    prerequisite: str = ''
    unlock_day: int = 1


@dataclass(frozen=True)
class HelperArchetype:
    """A helper type and the automation abilities it brings"""
    type: str
    name: str
    abilities: frozenset


@dataclass(frozen=True)
class GameConfiguration:
    """All catalogs for one run. Never mutated."""
    crops: ReadOnlyMap
    adventures: ReadOnlyMap
    mining: ReadOnlyMap  # depth -> MiningLevel
    upgrades: ReadOnlyMap
    helpers: ReadOnlyMap  # type -> HelperArchetype

    def crop(self, crop_id: str) -> Optional[Crop]:
        return self.crops.get(crop_id)

    def adventure(self, adventure_id: str) -> Optional[Adventure]:
        return self.adventures.get(adventure_id)

    def upgrade(self, upgrade_id: str) -> Optional[Upgrade]:
        return self.upgrades.get(upgrade_id)

    def mining_level(self, depth: int) -> Optional[MiningLevel]:
        return self.mining.get(depth)

    def with_catalogs(self, **catalogs) -> 'GameConfiguration':
        """Return a copy with some catalogs swapped out"""
        wrapped = {name: ReadOnlyMap(items) for name, items in catalogs.items()}
        return replace(self, **wrapped)

    @staticmethod
    def from_dict(data: Mapping[str, Iterable[Mapping[str, Any]]]) -> 'GameConfiguration':
        """Build a configuration from raw row dicts

        Args:
            data: {'crops': [...], 'adventures': [...], 'mining': [...],
                   'upgrades': [...], 'helpers': [...]}; missing catalogs are empty

        Returns:
            Validated GameConfiguration

        Raises:
            ConfigurationError: on any malformed row
        """
        crops = [parse_crop(row) for row in data.get('crops', ())]
        adventures = [parse_adventure(row) for row in data.get('adventures', ())]
        mining = [parse_mining_level(row) for row in data.get('mining', ())]
        upgrades = [parse_upgrade(row) for row in data.get('upgrades', ())]
        helpers = [parse_helper(row) for row in data.get('helpers', ())]

        return GameConfiguration(
            crops=_index('crops', crops, 'id'),
            adventures=_index('adventures', adventures, 'id'),
            mining=_index('mining', mining, 'depth'),
            upgrades=_index('upgrades', upgrades, 'id'),
            helpers=_index('helpers', helpers, 'type'),
        )


# ==================== Row Parsing ====================

def _index(catalog: str, records: list, key: str) -> ReadOnlyMap:
    items = {}
    for record in records:
        ident = getattr(record, key)
        if ident in items:
            raise ConfigurationError(f"{catalog}: duplicate id {ident!r}")
        items[ident] = record
    return ReadOnlyMap(items)


def _require(row: Mapping, key: str, catalog: str):
    value = row.get(key)
    if value is None or value == '':
        ident = row.get('id', row.get('type', row.get('depth', '?')))
        raise ConfigurationError(f"{catalog} {ident!r}: missing field {key!r}")
    return value


def _number(value, catalog: str, key: str, minimum: Optional[float] = None, cast=float):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{catalog}: field {key!r} is not numeric ({value!r})") from None
    if minimum is not None and number < minimum:
        raise ConfigurationError(f"{catalog}: field {key!r} must be >= {minimum} (got {number})")
    return number


def parse_materials(value: Any) -> ReadOnlyMap:
    """Parse 'stone:5;copper:3' (or a mapping) into a material -> amount map"""
    if not value:
        return ReadOnlyMap()
    if isinstance(value, Mapping):
        pairs = value.items()
    else:
        pairs = []
        for token in str(value).split(';'):
            token = token.strip()
            if not token:
                continue
            name, sep, amount = token.partition(':')
            if not sep:
                raise ConfigurationError(f"materials: malformed token {token!r}")
            pairs.append((name.strip(), amount.strip()))
    return ReadOnlyMap(
        (name.lower(), _number(amount, 'materials', name, minimum=0)) for name, amount in pairs
    )


def parse_crop(row: Mapping[str, Any]) -> Crop:
    crop_id = str(_require(row, 'id', 'crops')).strip().lower()
    tier = str(row.get('tier', 'early')).lower()
    if tier not in CROP_TIERS:
        raise ConfigurationError(f"crops {crop_id!r}: invalid tier {tier!r}")
    growth = _number(_require(row, 'growth_time', 'crops'), 'crops', 'growth_time')
    if growth <= 0:
        raise ConfigurationError(f"crops {crop_id!r}: growth_time must be positive")
    return Crop(
        id=crop_id,
        name=str(row.get('name', crop_id.title())),
        growth_time=growth,
        energy_yield=_number(_require(row, 'energy_yield', 'crops'), 'crops', 'energy_yield', minimum=0),
        tier=tier,
        unlock_day=_number(row.get('unlock_day', 1), 'crops', 'unlock_day', minimum=1, cast=int),
        seed_cost=_number(row.get('seed_cost', 0), 'crops', 'seed_cost', minimum=0),
    )


def parse_adventure(row: Mapping[str, Any]) -> Adventure:
    adventure_id = str(_require(row, 'id', 'adventures'))
    tiers = {}
    for duration in DURATION_TIERS:
        energy = _require(row, f'{duration}_energy', 'adventures')
        minutes = _require(row, f'{duration}_duration', 'adventures')
        tiers[duration] = AdventureTier(
            energy=_number(energy, 'adventures', f'{duration}_energy', minimum=0),
            duration=_number(minutes, 'adventures', f'{duration}_duration', minimum=1, cast=int),
        )
    return Adventure(
        id=adventure_id,
        name=str(_require(row, 'name', 'adventures')),
        tiers=ReadOnlyMap(tiers),
        gold_reward=_number(row.get('gold_reward', 0), 'adventures', 'gold_reward', minimum=0),
        common_material=str(row.get('common_material', 'stone')),
        common_amount=_number(row.get('common_amount', 1), 'adventures', 'common_amount', minimum=0, cast=int),
        rare_material=row.get('rare_material') or None,
        rare_amount=_number(row.get('rare_amount', 0), 'adventures', 'rare_amount', minimum=0, cast=int),
        boss_material=row.get('boss_material') or None,
        boss_amount=_number(row.get('boss_amount', 0), 'adventures', 'boss_amount', minimum=0, cast=int),
        unlock_day=_number(row.get('unlock_day', 1), 'adventures', 'unlock_day', minimum=1, cast=int),
    )


def parse_mining_level(row: Mapping[str, Any]) -> MiningLevel:
    depth = _number(_require(row, 'depth', 'mining'), 'mining', 'depth', minimum=1, cast=int)
    return MiningLevel(
        depth=depth,
        name=str(row.get('name', f'Depth {depth}')),
        unlock_day=_number(row.get('unlock_day', 1), 'mining', 'unlock_day', minimum=1, cast=int),
        duration=_number(row.get('duration', 30), 'mining', 'duration', minimum=1, cast=int),
    )


def parse_upgrade(row: Mapping[str, Any]) -> Upgrade:
    upgrade_id = str(_require(row, 'id', 'upgrades'))
    return Upgrade(
        id=upgrade_id,
        name=str(row.get('name', upgrade_id)),
        category=str(row.get('category', 'general')).lower(),
        cost=UpgradeCost(
            gold=_number(row.get('gold', 0), 'upgrades', 'gold', minimum=0),
            energy=_number(row.get('energy', 0), 'upgrades', 'energy', minimum=0),
            materials=parse_materials(row.get('materials')),
        ),
        effect=str(row.get('effect') or ''),
        prerequisite=str(row.get('prerequisite') or ''),
        unlock_day=_number(row.get('unlock_day', 1), 'upgrades', 'unlock_day', minimum=1, cast=int),
    )


def parse_helper(row: Mapping[str, Any]) -> HelperArchetype:
    helper_type = str(_require(row, 'type', 'helpers')).lower()
    abilities = row.get('abilities', ())
    if isinstance(abilities, str):
        abilities = [a.strip() for a in abilities.split(';') if a.strip()]
    return HelperArchetype(
        type=helper_type,
        name=str(row.get('name', helper_type.title())),
        abilities=frozenset(abilities),
    )


# ==================== Built-in Catalog ====================

DEFAULT_ROWS = {
    'crops': [
        {'id': 'carrot', 'name': 'Carrot', 'growth_time': 60, 'energy_yield': 10, 'tier': 'early'},
        {'id': 'radish', 'name': 'Radish', 'growth_time': 30, 'energy_yield': 4, 'tier': 'early'},
        {'id': 'potato', 'name': 'Potato', 'growth_time': 120, 'energy_yield': 25, 'tier': 'early'},
        {'id': 'cabbage', 'name': 'Cabbage', 'growth_time': 180, 'energy_yield': 45, 'tier': 'mid', 'unlock_day': 3},
        {'id': 'corn', 'name': 'Corn', 'growth_time': 240, 'energy_yield': 70, 'tier': 'mid', 'unlock_day': 3},
        {'id': 'pumpkin', 'name': 'Pumpkin', 'growth_time': 360, 'energy_yield': 130, 'tier': 'late', 'unlock_day': 8},
        {'id': 'sunflower', 'name': 'Sunflower', 'growth_time': 480, 'energy_yield': 200, 'tier': 'late', 'unlock_day': 8},
        {'id': 'starfruit', 'name': 'Starfruit', 'growth_time': 720, 'energy_yield': 420, 'tier': 'endgame', 'unlock_day': 15},
    ],
    'adventures': [
        {'id': 'meadow_path', 'name': 'Meadow Path', 'unlock_day': 1,
         'short_energy': 15, 'short_duration': 15, 'medium_energy': 30, 'medium_duration': 30,
         'long_energy': 60, 'long_duration': 60, 'gold_reward': 50,
         'common_material': 'stone', 'common_amount': 2, 'rare_material': 'copper', 'rare_amount': 1,
         'boss_material': 'silver', 'boss_amount': 1},
        {'id': 'pine_vale', 'name': 'Pine Vale', 'unlock_day': 3,
         'short_energy': 40, 'short_duration': 30, 'medium_energy': 80, 'medium_duration': 60,
         'long_energy': 150, 'long_duration': 120, 'gold_reward': 150,
         'common_material': 'stone', 'common_amount': 4, 'rare_material': 'iron', 'rare_amount': 1,
         'boss_material': 'crystal', 'boss_amount': 1},
        {'id': 'dark_forest', 'name': 'Dark Forest', 'unlock_day': 6,
         'short_energy': 100, 'short_duration': 45, 'medium_energy': 200, 'medium_duration': 90,
         'long_energy': 400, 'long_duration': 180, 'gold_reward': 400,
         'common_material': 'copper', 'common_amount': 3, 'rare_material': 'silver', 'rare_amount': 1,
         'boss_material': 'mythril', 'boss_amount': 1},
        {'id': 'crystal_caves', 'name': 'Crystal Caves', 'unlock_day': 12,
         'short_energy': 300, 'short_duration': 60, 'medium_energy': 600, 'medium_duration': 120,
         'long_energy': 1200, 'long_duration': 240, 'gold_reward': 1200,
         'common_material': 'iron', 'common_amount': 4, 'rare_material': 'crystal', 'rare_amount': 2,
         'boss_material': 'obsidian', 'boss_amount': 1},
    ],
    'mining': [
        {'depth': d, 'name': f'Depth {d}', 'unlock_day': max(1, d - 1), 'duration': 30}
        for d in range(1, 16)
    ],
    'upgrades': [
        # Storage
        {'id': 'storage_shed_1', 'name': 'Storage Shed', 'category': 'storage', 'gold': 50,
         'effect': 'energy_cap_150'},
        {'id': 'storage_shed_2', 'name': 'Large Shed', 'category': 'storage', 'unlock_day': 3, 'gold': 300,
         'materials': 'stone:10', 'effect': 'energy_cap_500', 'prerequisite': 'storage_shed_1'},
        {'id': 'storage_barn', 'name': 'Barn', 'category': 'storage', 'unlock_day': 6, 'gold': 1500,
         'materials': 'stone:20;copper:5', 'effect': 'energy_cap_1500', 'prerequisite': 'storage_shed_2'},
        {'id': 'storage_silo', 'name': 'Silo', 'category': 'storage', 'unlock_day': 10, 'gold': 6000,
         'materials': 'iron:10;copper:10', 'effect': 'energy_cap_6000',
         'prerequisite': 'storage_barn;manor_grounds'},
        {'id': 'storage_vault', 'name': 'Energy Vault', 'category': 'storage', 'unlock_day': 15, 'gold': 25000,
         'materials': 'silver:10;crystal:5', 'effect': 'energy_cap_20000', 'prerequisite': 'storage_silo'},
        {'id': 'storage_nexus', 'name': 'Energy Nexus', 'category': 'storage', 'unlock_day': 22, 'gold': 100000,
         'materials': 'mythril:5;obsidian:2', 'effect': 'energy_cap_100000',
         'prerequisite': 'storage_vault;great_estate'},
        # Water
        {'id': 'water_barrel', 'name': 'Rain Barrel', 'category': 'water', 'gold': 40, 'effect': 'water_cap_60'},
        {'id': 'water_cistern', 'name': 'Cistern', 'category': 'water', 'unlock_day': 5, 'gold': 400,
         'materials': 'stone:15', 'effect': 'water_cap_200', 'prerequisite': 'water_barrel'},
        {'id': 'water_reservoir', 'name': 'Reservoir', 'category': 'water', 'unlock_day': 9, 'gold': 2000,
         'materials': 'copper:10', 'effect': 'water_cap_600', 'prerequisite': 'water_cistern'},
        # Hero
        {'id': 'hero_backpack', 'name': 'Backpack', 'category': 'hero', 'gold': 60, 'energy': 20,
         'effect': 'carry_4_crops'},
        {'id': 'hero_satchel', 'name': 'Satchel', 'category': 'hero', 'unlock_day': 4, 'gold': 500, 'energy': 50,
         'materials': 'stone:5', 'effect': 'carry_8_crops', 'prerequisite': 'hero_backpack'},
        {'id': 'hero_wagon', 'name': 'Hand Wagon', 'category': 'hero', 'unlock_day': 9, 'gold': 3000,
         'energy': 150, 'materials': 'iron:5', 'effect': 'carry_12_crops',
         'prerequisite': 'hero_satchel;carpentry_built'},
        # Tower
        {'id': 'tower_floor_2', 'name': 'Tower Floor 2', 'category': 'tower', 'unlock_day': 2, 'gold': 200,
         'energy': 50, 'materials': 'stone:5', 'effect': 'tower_floor_2'},
        {'id': 'tower_floor_3', 'name': 'Tower Floor 3', 'category': 'tower', 'unlock_day': 6, 'gold': 1200,
         'energy': 200, 'materials': 'copper:5', 'effect': 'tower_floor_3', 'prerequisite': 'tower_floor_2'},
        {'id': 'tower_floor_4', 'name': 'Tower Floor 4', 'category': 'tower', 'unlock_day': 12, 'gold': 5000,
         'energy': 500, 'materials': 'iron:8', 'effect': 'tower_floor_4',
         'prerequisite': 'tower_floor_3;iron_pickaxe_tool'},
        # Tools and town
        {'id': 'iron_pickaxe', 'name': 'Iron Pickaxe', 'category': 'tools', 'unlock_day': 4, 'gold': 400,
         'materials': 'stone:10;copper:2', 'effect': 'tool_iron_pickaxe'},
        {'id': 'carpenter_workshop', 'name': 'Carpenter Workshop', 'category': 'town', 'unlock_day': 5,
         'gold': 800, 'materials': 'stone:15', 'effect': 'build_carpentry'},
        # Farm
        {'id': 'farm_expansion_1', 'name': 'Clear Brush', 'category': 'farm', 'gold': 100,
         'effect': 'expand_plots_2'},
        {'id': 'farm_expansion_2', 'name': 'Clear Rocks', 'category': 'farm', 'unlock_day': 3, 'gold': 500,
         'materials': 'stone:5', 'effect': 'expand_plots_5', 'prerequisite': 'farm_expansion_1'},
        {'id': 'farm_expansion_3', 'name': 'Drain Marsh', 'category': 'farm', 'unlock_day': 6, 'gold': 2500,
         'materials': 'stone:20', 'effect': 'expand_plots_10', 'prerequisite': 'farm_expansion_2'},
        {'id': 'manor_deed', 'name': 'Manor Deed', 'category': 'farm', 'unlock_day': 8, 'gold': 5000,
         'materials': 'copper:10', 'effect': 'farm_stage_manor_grounds', 'prerequisite': 'farm_expansion_3'},
        {'id': 'farm_expansion_4', 'name': 'East Fields', 'category': 'farm', 'unlock_day': 10, 'gold': 12000,
         'materials': 'iron:10', 'effect': 'expand_plots_20', 'prerequisite': 'manor_deed'},
        {'id': 'estate_deed', 'name': 'Estate Deed', 'category': 'farm', 'unlock_day': 16, 'gold': 40000,
         'materials': 'silver:10', 'effect': 'farm_stage_great_estate', 'prerequisite': 'farm_expansion_4'},
        {'id': 'farm_expansion_5', 'name': 'Valley Fields', 'category': 'farm', 'unlock_day': 20, 'gold': 80000,
         'materials': 'crystal:5', 'effect': 'expand_plots_40', 'prerequisite': 'estate_deed'},
    ],
    'helpers': [
        {'type': 'gnome', 'name': 'Garden Gnome', 'abilities': ['auto_harvest']},
        {'type': 'golem', 'name': 'Stone Golem', 'abilities': ['auto_plant', 'auto_water']},
        {'type': 'sprite', 'name': 'Forest Sprite', 'abilities': ['auto_adventure', 'auto_mine']},
        {'type': 'dragon', 'name': 'Baby Dragon', 'abilities': ['auto_adventure', 'auto_mine']},
        {'type': 'phoenix', 'name': 'Phoenix', 'abilities': ['auto_adventure', 'auto_mine']},
    ],
}


def default_game_values() -> GameConfiguration:
    """Built-in catalog used when no spreadsheet data is supplied"""
    return GameConfiguration.from_dict(DEFAULT_ROWS)
