"""状态累积：纯函数，输入父页快照与增量，输出新状态。"""

from storyloom.state.canon import (
    add_fact,
    find_potential_contradictions,
    get_character_facts,
    merge_canon_facts,
)
from storyloom.state.character_state import (
    allocate_character_states,
    apply_character_state_changes,
)
from storyloom.state.identity import (
    IdentityAllocator,
    allocate_entries,
    counters_from_snapshot,
    derive_counters,
)
from storyloom.state.keyed_state import accumulate_keyed, apply_keyed_changes
from storyloom.state.legacy import (
    convert_legacy_entries,
    migrate_legacy_chain,
    migrate_legacy_page,
)
from storyloom.state.npc_state import accumulate_npc_agendas, accumulate_npc_relationships
from storyloom.state.promise_lifecycle import accumulate_promises, allocate_promises
from storyloom.state.thread_lifecycle import (
    accumulate_threads,
    allocate_threads,
    augment_threads_resolved,
)

__all__ = [
    "IdentityAllocator",
    "accumulate_keyed",
    "accumulate_npc_agendas",
    "accumulate_npc_relationships",
    "accumulate_promises",
    "accumulate_threads",
    "add_fact",
    "allocate_character_states",
    "allocate_entries",
    "allocate_promises",
    "allocate_threads",
    "apply_character_state_changes",
    "apply_keyed_changes",
    "augment_threads_resolved",
    "convert_legacy_entries",
    "counters_from_snapshot",
    "derive_counters",
    "find_potential_contradictions",
    "get_character_facts",
    "merge_canon_facts",
    "migrate_legacy_chain",
    "migrate_legacy_page",
]
