"""Parent/child hierarchy over a flat process map."""

from collections.abc import Iterable, Mapping

from procmetrics.models import GeneralInfo


def build_tree(processes: Mapping[int, GeneralInfo]) -> dict[int, list[int]]:
    """Index the captured processes by parent id."""
    hierarchy: dict[int, list[int]] = {}

    for process_id, process in processes.items():
        hierarchy.setdefault(process.parent_process_id, []).append(process_id)

    return hierarchy


def expand(seed_ids: Iterable[int], tree: Mapping[int, list[int]]) -> set[int]:
    """
    Return the seed ids together with every descendant reachable from them.

    Ids already visited are not followed again, so cycles in degenerate data
    terminate. Neither argument is modified.
    """
    result: set[int] = set()
    pending = list(seed_ids)

    while pending:
        process_id = pending.pop()
        if process_id in result:
            continue

        result.add(process_id)
        pending.extend(tree.get(process_id, ()))

    return result


def subtree(
    processes: Mapping[int, GeneralInfo],
    pid: Iterable[int] | None,
    ppid: Iterable[int],
) -> set[int]:
    """Ids in the union of the ``pid`` and ``ppid`` subtrees."""
    hierarchy = build_tree(processes)
    seeds = list(ppid)
    if pid is not None:
        seeds.extend(pid)
    return expand(seeds, hierarchy)
