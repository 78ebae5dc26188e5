from __future__ import annotations

from typing import List, Optional

from babelsim.economy import replacement_cost
from babelsim.models import SIMD_TAG, GameState, ProcessorState, StoreItem
from babelsim.processors import replace_processor

HARDENING_CAP = 3
STORAGE_EXPANSION = 80
SPEED_STEP = 0.05
THERMAL_PASTE_MS = 18_000  # one day cycle

INCREASE_SPEED = "increase_speed"
IMPROVE_QUALITY = "improve_quality"
EXPAND_STORAGE = "expand_storage"
UNLOCK_INSTRUCTION_SET = "unlock_instruction_set"
UPGRADE_COOLING = "upgrade_cooling"
UPGRADE_HARDENING = "upgrade_hardening"
APPLY_THERMAL_PASTE = "apply_thermal_paste"
INSTALL_DAEMON_FIRMWARE = "install_daemon_firmware"
REPLACE_PROCESSOR = "replace_processor"
REPLACE_MODEL = "replace_model"

PER_PROCESSOR_ACTIONS = frozenset({UPGRADE_COOLING, UPGRADE_HARDENING, INSTALL_DAEMON_FIRMWARE})
REPLACEMENT_ACTIONS = frozenset({REPLACE_PROCESSOR, REPLACE_MODEL})

STORE_ITEMS: List[StoreItem] = [
    StoreItem(
        name="Clock Tuning",
        description="Trim execution cycles for all processors (+0.05 speed each purchase).",
        base_cost=120,
        cost_step=45,
        action=INCREASE_SPEED,
    ),
    StoreItem(
        name="Precision Calibration",
        description="Improve processor quality bias (+1 each purchase).",
        base_cost=140,
        cost_step=60,
        action=IMPROVE_QUALITY,
    ),
    StoreItem(
        name="Storage Array Expansion",
        description="Increase data capacity by +80 units.",
        base_cost=100,
        cost_step=55,
        action=EXPAND_STORAGE,
    ),
    StoreItem(
        name="Instruction Microcode",
        description="Install SIMD microcode; unlocks advanced job stream and adds support to processors.",
        base_cost=260,
        cost_step=0,
        action=UNLOCK_INSTRUCTION_SET,
        max_purchases=1,
        tag=SIMD_TAG,
    ),
    StoreItem(
        name="Cooling Kit",
        description="Install additional cooling on the selected processor (+1 level up to cap).",
        base_cost=90,
        cost_step=35,
        action=UPGRADE_COOLING,
    ),
    StoreItem(
        name="Hardening Module",
        description="Radiation shielding and error correction for the selected processor (+1 hardening).",
        base_cost=140,
        cost_step=55,
        action=UPGRADE_HARDENING,
    ),
    StoreItem(
        name="Service-Grade Thermal Paste",
        description="Refreshes thermal interface material for the day (temporary +1 cooling level).",
        base_cost=60,
        cost_step=20,
        action=APPLY_THERMAL_PASTE,
    ),
    StoreItem(
        name="Daemon Microcode",
        description="Unlock automation firmware for the selected processor and ease penalties.",
        base_cost=180,
        cost_step=80,
        action=INSTALL_DAEMON_FIRMWARE,
    ),
    StoreItem(
        name="Replace Selected Unit",
        description="Swap the highlighted processor chassis at the model's service rate.",
        base_cost=0,
        cost_step=0,
        action=REPLACE_PROCESSOR,
    ),
    StoreItem(
        name="Replace Model Fleet",
        description="Replace all burnt or destroyed units of the selected model at bulk rate.",
        base_cost=0,
        cost_step=0,
        action=REPLACE_MODEL,
    ),
]


class PurchaseError(Exception):
    pass


class InvalidItemError(PurchaseError):
    def __init__(self) -> None:
        super().__init__("unknown store item")


class SoldOutError(PurchaseError):
    def __init__(self, item: str) -> None:
        super().__init__(f"{item} is sold out")
        self.item = item


class InstructionAlreadyUnlockedError(PurchaseError):
    def __init__(self, tag: str) -> None:
        super().__init__(f"{tag} instruction set already unlocked")
        self.tag = tag


class ProcessorSelectionRequiredError(PurchaseError):
    def __init__(self) -> None:
        super().__init__("select a processor first")


class ProcessorHealthyError(PurchaseError):
    def __init__(self) -> None:
        super().__init__("selected processor is operational")


class NoMatchingProcessorsError(PurchaseError):
    def __init__(self) -> None:
        super().__init__("no matching processors require replacement")


class UpgradeAtCapError(PurchaseError):
    def __init__(self) -> None:
        super().__init__("upgrade already at maximum level")


class DaemonAlreadyInstalledError(PurchaseError):
    def __init__(self) -> None:
        super().__init__("daemon firmware already installed")


class InsufficientCreditsError(PurchaseError):
    def __init__(self, cost: int) -> None:
        super().__init__(f"not enough credits (requires {cost})")
        self.cost = cost


def store_index_for(action: str) -> Optional[int]:
    for i, item in enumerate(STORE_ITEMS):
        if item.action == action:
            return i
    return None


def ensure_purchase_counters(state: GameState) -> None:
    if len(state.store_purchases) < len(STORE_ITEMS):
        state.store_purchases.extend([0] * (len(STORE_ITEMS) - len(state.store_purchases)))


def purchases_of(state: GameState, index: int) -> int:
    if 0 <= index < len(state.store_purchases):
        return int(state.store_purchases[index])
    return 0


def model_replacement_cost(state: GameState, name: str) -> int:
    return sum(replacement_cost(p) for p in state.processors if p.name == name and not p.is_functional())


def _selected(state: GameState, processor_index: Optional[int]) -> Optional[ProcessorState]:
    if processor_index is None or not (0 <= processor_index < len(state.processors)):
        return None
    return state.processors[processor_index]


def item_cost(state: GameState, index: int, processor_index: Optional[int] = None) -> Optional[int]:
    """Live price of a catalog entry, or None when it cannot be bought right now."""

    if not (0 <= index < len(STORE_ITEMS)):
        return None
    item = STORE_ITEMS[index]

    if item.action in REPLACEMENT_ACTIONS or item.action in PER_PROCESSOR_ACTIONS:
        p = _selected(state, processor_index)
        if p is None:
            return None
        if item.action == REPLACE_PROCESSOR:
            return replacement_cost(p) or None
        if item.action == REPLACE_MODEL:
            return model_replacement_cost(state, p.name) or None
        if item.action == UPGRADE_COOLING:
            if p.cooling_level >= p.cooling_cap:
                return None
            return item.base_cost + item.cost_step * p.cooling_level
        if item.action == UPGRADE_HARDENING:
            if p.hardening_level >= HARDENING_CAP:
                return None
            return item.base_cost + item.cost_step * p.hardening_level
        if p.daemon_unlocked:
            return None
        return item.base_cost + item.cost_step * max(0, p.daemon_priority)

    purchases = purchases_of(state, index)
    if item.max_purchases is not None and purchases >= item.max_purchases:
        return None
    if item.action == UNLOCK_INSTRUCTION_SET and state.is_instruction_unlocked(item.tag):
        return None
    return item.base_cost + item.cost_step * purchases


def _validate(state: GameState, index: int, processor_index: Optional[int]) -> int:
    """Run every purchase check and return the cost. Never mutates."""

    if not (0 <= index < len(STORE_ITEMS)):
        raise InvalidItemError()
    item = STORE_ITEMS[index]
    purchases = purchases_of(state, index)
    if item.action == UNLOCK_INSTRUCTION_SET and state.is_instruction_unlocked(item.tag):
        raise InstructionAlreadyUnlockedError(item.tag)
    if item.max_purchases is not None and purchases >= item.max_purchases:
        raise SoldOutError(item.name)

    if item.action in REPLACEMENT_ACTIONS or item.action in PER_PROCESSOR_ACTIONS:
        p = _selected(state, processor_index)
        if p is None:
            raise ProcessorSelectionRequiredError()
        if item.action == REPLACE_PROCESSOR:
            cost = replacement_cost(p)
            if cost == 0:
                raise ProcessorHealthyError()
        elif item.action == REPLACE_MODEL:
            cost = model_replacement_cost(state, p.name)
            if cost == 0:
                raise NoMatchingProcessorsError()
        elif item.action == UPGRADE_COOLING:
            if p.cooling_level >= p.cooling_cap:
                raise UpgradeAtCapError()
            cost = item.base_cost + item.cost_step * p.cooling_level
        elif item.action == UPGRADE_HARDENING:
            if p.hardening_level >= HARDENING_CAP:
                raise UpgradeAtCapError()
            cost = item.base_cost + item.cost_step * p.hardening_level
        else:
            if p.daemon_unlocked:
                raise DaemonAlreadyInstalledError()
            cost = item.base_cost + item.cost_step * max(0, p.daemon_priority)
    else:
        cost = item.base_cost + item.cost_step * purchases

    if state.credits < cost:
        raise InsufficientCreditsError(cost)
    return cost


def unlock_instruction_tag(state: GameState, tag: str) -> bool:
    if state.is_instruction_unlocked(tag):
        return False
    state.unlocked_tags.append(tag)
    for p in state.processors:
        if not p.supports(tag):
            p.instruction_set.append(tag)
    return True


def _apply(state: GameState, item: StoreItem, processor_index: Optional[int]) -> List[str]:
    messages: List[str] = []
    p = _selected(state, processor_index)

    if item.action == INCREASE_SPEED:
        for unit in state.processors:
            unit.speed += SPEED_STEP
        messages.append("Clock tuning applied: +0.05 speed to processors.")
    elif item.action == IMPROVE_QUALITY:
        for unit in state.processors:
            unit.quality_bias += 1
        messages.append("Calibration improved processor quality bias.")
    elif item.action == EXPAND_STORAGE:
        state.storage.expand(STORAGE_EXPANSION)
        messages.append(f"Storage capacity expanded to {state.storage.capacity} units.")
    elif item.action == UNLOCK_INSTRUCTION_SET:
        if unlock_instruction_tag(state, item.tag):
            messages.append(f"Microcode integrated: processors now accept {item.tag} workloads.")
            messages.append("Advanced job stream unlocked; watch for specialized contracts.")
    elif item.action == UPGRADE_COOLING and p is not None:
        p.cooling_level += 1
        p.ensure_runtime_defaults()
        messages.append(f"{p.name} cooling upgraded to level {p.cooling_level}.")
    elif item.action == UPGRADE_HARDENING and p is not None:
        p.hardening_level += 1
        messages.append(f"{p.name} hardening increased to level {p.hardening_level}.")
    elif item.action == APPLY_THERMAL_PASTE:
        state.thermal_paste_timer_ms = THERMAL_PASTE_MS
        messages.append("Thermal paste refreshed: cooling bonus active this cycle.")
    elif item.action == INSTALL_DAEMON_FIRMWARE and p is not None:
        p.daemon_unlocked = True
        p.daemon_penalty.quality = max(p.daemon_penalty.quality, -3)
        p.daemon_penalty.time_multiplier = max(p.daemon_penalty.time_multiplier - 0.02, 1.02)
        messages.append(f"{p.name} daemon firmware installed. Automation penalties eased.")
    elif item.action == REPLACE_PROCESSOR and p is not None:
        replace_processor(p)
        messages.append(f"Replaced {p.name} chassis. Unit restored to service.")
    elif item.action == REPLACE_MODEL and p is not None:
        replaced = 0
        for unit in state.processors:
            if unit.name == p.name and not unit.is_functional():
                replace_processor(unit)
                replaced += 1
        messages.append(f"Replaced {replaced} units of {p.name}. Fleet restored.")
    return messages


def purchase_item(state: GameState, index: int, processor_index: Optional[int] = None) -> List[str]:
    """Buy catalog entry ``index``; returns the messages to report.

    Raises a PurchaseError subclass without touching ``state`` when any check fails.
    """

    cost = _validate(state, index, processor_index)
    item = STORE_ITEMS[index]

    ensure_purchase_counters(state)
    state.credits -= cost
    messages = _apply(state, item, processor_index)
    if item.action not in REPLACEMENT_ACTIONS:
        state.store_purchases[index] += 1
    messages.append(f"Purchased {item.name} (-{cost} cr)")
    return messages
