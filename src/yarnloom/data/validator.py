"""Static validation of merged programs."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Set

from yarnloom.core.templates import placeholder_indices
from yarnloom.domain.program import Node, OpCode, Program

Severity = str


@dataclass(frozen=True, slots=True)
class Issue:
    severity: Severity
    code: str
    message: str
    context: Dict[str, str] = field(default_factory=dict)


def format_issue(issue: Issue) -> str:
    context = " ".join(f"{key}={value}" for key, value in issue.context.items())
    suffix = f" ({context})" if context else ""
    return f"[{issue.severity}] {issue.code}: {issue.message}{suffix}"


def validate_program(program: Program, entry_nodes: Sequence[str] = ()) -> List[Issue]:
    """Return every problem found in the program's cross references.

    Reachability is only checked when ``entry_nodes`` are given.
    """
    issues: List[Issue] = []
    node_names = set(program.nodes.keys())

    for entry in entry_nodes:
        if entry not in node_names:
            issues.append(
                Issue(
                    severity="ERROR",
                    code="MISSING_ENTRY_NODE",
                    message="Entry node is not declared by any program.",
                    context={"node": entry},
                )
            )

    for node in program.nodes.values():
        _validate_node(program, node, node_names, issues)

    if entry_nodes:
        _validate_reachability(program, entry_nodes, issues)
    return issues


def errors_only(issues: Iterable[Issue]) -> List[Issue]:
    return [issue for issue in issues if issue.severity == "ERROR"]


def _validate_node(program: Program, node: Node, node_names: Set[str], issues: List[Issue]) -> None:
    for position, instruction in enumerate(node.instructions):
        location = {"node": node.name, "instruction": str(position)}
        opcode = instruction.opcode
        if opcode == OpCode.RUN_NODE and instruction.operands:
            target = str(instruction.operands[0])
            if target not in node_names:
                issues.append(
                    Issue(
                        severity="ERROR",
                        code="MISSING_NODE_TARGET",
                        message="Run-node instruction references a missing node.",
                        context={**location, "referenced_id": target},
                    )
                )
        elif opcode == OpCode.ADD_OPTION:
            destination = str(instruction.operands[1])
            if destination not in node_names:
                issues.append(
                    Issue(
                        severity="ERROR",
                        code="MISSING_OPTION_DESTINATION",
                        message="Option destination references a missing node.",
                        context={**location, "referenced_id": destination},
                    )
                )
            _check_string(program, str(instruction.operands[0]), instruction.count_operand(2), location, issues)
        elif opcode == OpCode.RUN_LINE:
            _check_string(program, str(instruction.operands[0]), instruction.count_operand(1), location, issues)


def _check_string(
    program: Program,
    key: str,
    substitution_count: int,
    location: Dict[str, str],
    issues: List[Issue],
) -> None:
    if not program.strings:
        return
    entry = program.strings.get(key)
    if entry is None:
        issues.append(
            Issue(
                severity="WARNING",
                code="MISSING_STRING_KEY",
                message="String key is not present in the string table.",
                context={**location, "key": key},
            )
        )
        return
    out_of_range = sorted(index for index in placeholder_indices(entry.text) if index >= substitution_count)
    if out_of_range:
        issues.append(
            Issue(
                severity="WARNING",
                code="PLACEHOLDER_OUT_OF_RANGE",
                message="Template uses placeholders beyond the substitution count.",
                context={
                    **location,
                    "key": key,
                    "placeholders": ",".join(str(index) for index in out_of_range),
                },
            )
        )


def _successors(node: Node) -> Set[str]:
    targets: Set[str] = set()
    for instruction in node.instructions:
        if instruction.opcode == OpCode.RUN_NODE and instruction.operands:
            targets.add(str(instruction.operands[0]))
        elif instruction.opcode == OpCode.ADD_OPTION:
            targets.add(str(instruction.operands[1]))
    return targets


def _validate_reachability(program: Program, entry_nodes: Sequence[str], issues: List[Issue]) -> None:
    # Nodes only reachable through a run-node target popped from the stack are
    # reported too; the target is not known statically.
    seen: Set[str] = set()
    queue = deque(name for name in entry_nodes if name in program.nodes)
    while queue:
        name = queue.popleft()
        if name in seen:
            continue
        seen.add(name)
        for target in _successors(program.nodes[name]):
            if target in program.nodes and target not in seen:
                queue.append(target)
    for name in sorted(set(program.nodes) - seen):
        issues.append(
            Issue(
                severity="WARNING",
                code="UNREACHABLE_NODE",
                message="Node is not reachable from any entry node.",
                context={"node": name},
            )
        )


__all__ = ["Issue", "errors_only", "format_issue", "validate_program"]
