"""
Upgrade Prerequisites
=====================
Parsing and checking of semicolon-delimited prerequisite expressions, plus the
upgrade dependency graph (depths, critical paths, unlock deltas, path costs) and
time-to-afford estimates for ranking what to buy next.

Tokens carry no explicit type tag; they are classified by pattern:
farm stage enum -> tool/weapon -> building -> upgrade id.
"""

import logging
import math
from collections import namedtuple
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from game_values import Upgrade

logger = logging.getLogger(__name__)

FARM_STAGES = ('homestead', 'manor_grounds', 'great_estate')
TOOL_MARKERS = ('_tool', '_weapon')
BUILDING_MARKERS = ('_built', '_complete')

# Checked (and reported) in this order
BLOCKING_ORDER = ('upgrade', 'farm_stage', 'tool', 'building')

PARADIGM_CATEGORIES = ('deeds',)
INFRASTRUCTURE_CATEGORIES = ('storage', 'water', 'energy')

Holdings = namedtuple('Holdings', ['owned_upgrades', 'farm_stages', 'tools', 'buildings'])


# ==================== Parsing ====================

@dataclass(frozen=True)
class Prerequisites:
    """A parsed prerequisite expression"""
    upgrades: Tuple[str, ...] = ()
    farm_stages: Tuple[str, ...] = ()
    tools: Tuple[str, ...] = ()
    buildings: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (self.upgrades or self.farm_stages or self.tools or self.buildings)


def classify_token(token: str) -> str:
    """Return 'farm_stage', 'tool', 'building' or 'upgrade' for one token"""
    if token in FARM_STAGES:
        return 'farm_stage'
    if any(marker in token for marker in TOOL_MARKERS):
        return 'tool'
    if any(marker in token for marker in BUILDING_MARKERS):
        return 'building'
    return 'upgrade'


def parse_prerequisites(expression: Optional[str]) -> Prerequisites:
    """Split 'a;b;manor_grounds;iron_pickaxe_tool' into typed buckets"""
    buckets: Dict[str, List[str]] = {kind: [] for kind in BLOCKING_ORDER}
    if expression:
        for raw in expression.split(';'):
            token = raw.strip()
            if token:
                buckets[classify_token(token)].append(token)
    return Prerequisites(
        upgrades=tuple(buckets['upgrade']),
        farm_stages=tuple(buckets['farm_stage']),
        tools=tuple(buckets['tool']),
        buildings=tuple(buckets['building']),
    )


def granted_reference(effect: str) -> Optional[Tuple[str, str]]:
    """Prerequisite token granted by an upgrade effect, as (kind, token)"""
    if effect.startswith('farm_stage_'):
        stage = effect[len('farm_stage_'):]
        return ('farm_stage', stage) if stage in FARM_STAGES else None
    if effect.startswith('tool_'):
        return 'tool', f"{effect[len('tool_'):]}_tool"
    if effect.startswith('build_'):
        return 'building', f"{effect[len('build_'):]}_built"
    return None


def holdings_of(state) -> Holdings:
    """Snapshot the prerequisite-relevant parts of a GameState / GameSnapshot"""
    return Holdings(
        owned_upgrades=frozenset(state.owned_upgrades),
        farm_stages=frozenset(state.farm_stages),
        tools=frozenset(state.tools),
        buildings=frozenset(state.buildings),
    )


# ==================== Checking ====================

@dataclass(frozen=True)
class PrerequisiteCheck:
    can_purchase: bool
    missing_upgrades: Tuple[str, ...] = ()
    missing_farm_stages: Tuple[str, ...] = ()
    missing_tools: Tuple[str, ...] = ()
    missing_buildings: Tuple[str, ...] = ()
    next_requirement: Optional[str] = None
    blocking_type: Optional[str] = None


def check_prerequisites(expression: Optional[str], state) -> PrerequisiteCheck:
    """Check an expression against the holdings of `state`

    Args:
        expression: prerequisite string (may be empty)
        state: anything with owned_upgrades / farm_stages / tools / buildings

    Returns:
        PrerequisiteCheck; blocking_type is the first missing category in
        upgrade -> farm_stage -> tool -> building order
    """
    held = state if isinstance(state, Holdings) else holdings_of(state)
    prereqs = parse_prerequisites(expression)

    missing = {
        'upgrade': tuple(t for t in prereqs.upgrades if t not in held.owned_upgrades),
        'farm_stage': tuple(t for t in prereqs.farm_stages if t not in held.farm_stages),
        'tool': tuple(t for t in prereqs.tools if t not in held.tools),
        'building': tuple(t for t in prereqs.buildings if t not in held.buildings),
    }

    blocking_type = None
    next_requirement = None
    for kind in BLOCKING_ORDER:
        if missing[kind]:
            blocking_type = kind
            next_requirement = missing[kind][0]
            break

    return PrerequisiteCheck(
        can_purchase=blocking_type is None,
        missing_upgrades=missing['upgrade'],
        missing_farm_stages=missing['farm_stage'],
        missing_tools=missing['tool'],
        missing_buildings=missing['building'],
        next_requirement=next_requirement,
        blocking_type=blocking_type,
    )


class UpgradeStatus(Enum):
    OWNED = "owned"
    AVAILABLE = "available"
    FARM_LOCKED = "farm_locked"
    TOOL_LOCKED = "tool_locked"
    BUILDING_LOCKED = "building_locked"
    PREREQUISITE_MISSING = "prerequisite_missing"


def upgrade_status(upgrade: Upgrade, state) -> UpgradeStatus:
    """Why an upgrade is (or is not) purchasable right now, ignoring cost"""
    held = state if isinstance(state, Holdings) else holdings_of(state)
    if upgrade.id in held.owned_upgrades:
        return UpgradeStatus.OWNED
    check = check_prerequisites(upgrade.prerequisite, held)
    if check.can_purchase:
        return UpgradeStatus.AVAILABLE
    if check.missing_farm_stages:
        return UpgradeStatus.FARM_LOCKED
    if check.missing_tools:
        return UpgradeStatus.TOOL_LOCKED
    if check.missing_buildings:
        return UpgradeStatus.BUILDING_LOCKED
    return UpgradeStatus.PREREQUISITE_MISSING


# ==================== Dependency Graph ====================

class DependencyGraph:
    """Upgrade id -> prerequisite upgrade ids, over one catalog"""

    def __init__(self, upgrades: Mapping[str, Upgrade]):
        self.upgrades = upgrades
        self.prerequisites: Dict[str, Tuple[str, ...]] = {}
        self.dependents: Dict[str, List[str]] = {uid: [] for uid in upgrades}
        self.warnings: List[str] = []

        for uid, upgrade in upgrades.items():
            parents = tuple(p for p in parse_prerequisites(upgrade.prerequisite).upgrades if p in upgrades)
            self.prerequisites[uid] = parents
            for parent in parents:
                self.dependents[parent].append(uid)

        self.depths: Dict[str, int] = {}
        self._cyclic: Set[str] = set()
        for uid in upgrades:
            self._depth_of(uid, [])

    @classmethod
    def build(cls, catalog) -> 'DependencyGraph':
        """Graph over a GameConfiguration (or a plain id -> Upgrade mapping)"""
        return cls(getattr(catalog, 'upgrades', catalog))

    @property
    def nodes(self) -> List[str]:
        return list(self.upgrades)

    @property
    def edges(self) -> List[Tuple[str, str]]:
        """(prerequisite, dependent) pairs"""
        return [(parent, uid) for uid, parents in self.prerequisites.items() for parent in parents]

    def _depth_of(self, uid: str, stack: List[str]) -> int:
        if uid in self.depths:
            return self.depths[uid]
        if uid in stack:
            cycle = stack[stack.index(uid):]
            self._cyclic.update(cycle)
            message = f"Prerequisite cycle: {' -> '.join(cycle + [uid])}"
            self.warnings.append(message)
            logger.warning(message)
            return 0

        stack.append(uid)
        parents = self.prerequisites.get(uid, ())
        depth = 1 + max(self._depth_of(p, stack) for p in parents) if parents else 0
        stack.pop()

        if uid in self._cyclic:
            depth = 0
        self.depths[uid] = depth
        return depth

    def depth(self, uid: str) -> int:
        return self.depths.get(uid, 0)

    def max_depth(self) -> int:
        return max(self.depths.values(), default=0)

    def is_cyclic(self, uid: str) -> bool:
        return uid in self._cyclic

    def dependents_of(self, uid: str) -> List[str]:
        return list(self.dependents.get(uid, ()))

    def critical_path(self, target: str, owned: Iterable[str] = ()) -> List[str]:
        """Unowned upgrades to buy, in order, to reach `target` (target last)"""
        owned = set(owned)
        path: List[str] = []
        seen: Set[str] = set()

        def unwind(uid):
            if uid in seen or uid in owned:
                return
            seen.add(uid)
            for parent in self.prerequisites.get(uid, ()):
                unwind(parent)
            path.append(uid)

        if target in self.upgrades:
            unwind(target)
        return path

    def purchasable(self, held: Holdings) -> List[str]:
        """Unowned upgrades whose prerequisites are all met"""
        return [
            uid for uid, upgrade in self.upgrades.items()
            if uid not in held.owned_upgrades and check_prerequisites(upgrade.prerequisite, held).can_purchase
        ]

    def unlocked_by(self, uid: str, state) -> List[str]:
        """Upgrades that become purchasable once `uid` is owned"""
        held = state if isinstance(state, Holdings) else holdings_of(state)
        before = set(self.purchasable(held))

        farm_stages, tools, buildings = set(held.farm_stages), set(held.tools), set(held.buildings)
        upgrade = self.upgrades.get(uid)
        granted = granted_reference(upgrade.effect) if upgrade else None
        if granted:
            kind, token = granted
            {'farm_stage': farm_stages, 'tool': tools, 'building': buildings}[kind].add(token)

        after_held = Holdings(held.owned_upgrades | {uid}, frozenset(farm_stages),
                              frozenset(tools), frozenset(buildings))
        return [u for u in self.purchasable(after_held) if u not in before and u != uid]

    def path_cost(self, path: Iterable[str]) -> Dict[str, object]:
        """Total gold / energy / materials to buy every upgrade in `path`"""
        gold = 0.0
        energy = 0.0
        materials: Dict[str, float] = {}
        steps = 0
        for uid in path:
            upgrade = self.upgrades.get(uid)
            if upgrade is None:
                continue
            steps += 1
            gold += upgrade.cost.gold
            energy += upgrade.cost.energy
            for name, amount in upgrade.cost.materials.items():
                materials[name] = materials.get(name, 0.0) + amount
        return {'steps': steps, 'gold': gold, 'energy': energy, 'materials': materials}


def path_score(cost: Mapping[str, object]) -> float:
    """Higher is better: short, cheap paths needing few material types"""
    return (1000.0
            - 10.0 * cost['steps']
            - 0.001 * cost['gold']
            - 50.0 * len(cost['materials']))


# ==================== Affordability ====================

@dataclass(frozen=True)
class AffordEstimate:
    can_afford_now: bool
    hours: float  # math.inf when the cost can never be covered by income
    bottleneck: Optional[str] = None  # 'gold', 'energy' or 'materials'


@dataclass(frozen=True)
class Recommendation:
    upgrade_id: str
    priority: float
    estimate: AffordEstimate


def missing_resources(upgrade: Upgrade, resources: Mapping[str, float]) -> Dict[str, float]:
    """Shortfall per resource kind ('gold', 'energy' or a material name)"""
    return {
        kind: amount - resources.get(kind, 0.0)
        for kind, amount in upgrade.cost.as_dict().items()
        if amount > resources.get(kind, 0.0)
    }


def time_to_afford(upgrade: Upgrade, resources: Mapping[str, float],
                   income_rates: Mapping[str, float]) -> AffordEstimate:
    """Hours of income until `upgrade` is affordable

    Args:
        upgrade: the upgrade to price
        resources: current stock, keyed like UpgradeCost.as_dict()
        income_rates: 'gold' and 'energy' earned per hour

    Returns:
        AffordEstimate; gold and energy accrue from income, materials never do
    """
    missing = missing_resources(upgrade, resources)
    if not missing:
        return AffordEstimate(can_afford_now=True, hours=0.0)

    hours = 0.0
    bottleneck = None
    for kind in ('gold', 'energy'):
        if kind not in missing:
            continue
        rate = income_rates.get(kind, 0.0)
        if rate <= 0:
            return AffordEstimate(can_afford_now=False, hours=math.inf, bottleneck=kind)
        needed = missing[kind] / rate
        if needed > hours:
            hours, bottleneck = needed, kind

    if any(kind not in ('gold', 'energy') for kind in missing):
        return AffordEstimate(can_afford_now=False, hours=math.inf, bottleneck='materials')
    return AffordEstimate(can_afford_now=False, hours=hours, bottleneck=bottleneck)


def recommendation_priority(upgrade: Upgrade, estimate: AffordEstimate, tier: int = 1) -> float:
    """Score for the next-purchase list: affordability, paradigm shifts, infrastructure, low tiers"""
    score = 0.0
    if estimate.can_afford_now:
        score += 100
    elif estimate.hours < 1:
        score += 50
    elif estimate.hours < 24:
        score += 25

    if upgrade.category in PARADIGM_CATEGORIES or 'Auto' in upgrade.name:
        score += 75
    if upgrade.category in INFRASTRUCTURE_CATEGORIES:
        score += 50
    return score + max(0, 20 - tier * 2)


def recommend_upgrades(graph: DependencyGraph, candidates: Iterable[str], resources: Mapping[str, float],
                       income_rates: Mapping[str, float], limit: int = 10) -> List[Recommendation]:
    """Highest-priority candidates that income can eventually pay for

    A candidate's tier is its graph depth + 1, so root upgrades score highest.
    Ties keep catalog order.
    """
    ranked = []
    for uid in candidates:
        upgrade = graph.upgrades.get(uid)
        if upgrade is None:
            continue
        estimate = time_to_afford(upgrade, resources, income_rates)
        if math.isinf(estimate.hours):
            continue
        priority = recommendation_priority(upgrade, estimate, graph.depth(uid) + 1)
        ranked.append(Recommendation(uid, priority, estimate))
    ranked.sort(key=lambda rec: rec.priority, reverse=True)
    return ranked[:limit]
