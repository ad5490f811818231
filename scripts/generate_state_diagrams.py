"""
Render Mermaid diagrams from the credit request and redemption transition tables.

Usage:
    python scripts/generate_state_diagrams.py            # print to stdout
    python scripts/generate_state_diagrams.py --update   # rewrite docs/STATE_DIAGRAMS.md
    python scripts/generate_state_diagrams.py --check    # fail when the document is stale (CI)
"""
import argparse
import re
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

# Make the package importable when run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from creditflow.state_machine.credit_request_machine import (
    CREDIT_REQUEST_TRANSITIONS,
    TRANSITION_TABLE,
    initial_status,
)
from creditflow.state_machine.states import (
    REDEMPTION_TRANSITIONS,
    CreditRequestStatus,
    CreditRequestType,
    RedemptionStatus,
)

DEFAULT_DOCUMENT = Path(__file__).resolve().parent.parent / "docs" / "STATE_DIAGRAMS.md"

START_MARKER = "<!-- STATE_DIAGRAMS_START -->"
END_MARKER = "<!-- STATE_DIAGRAMS_END -->"

CREDIT_REQUEST_LABELS: dict[str, str] = {
    CreditRequestStatus.PENDING_SIGNATURE.value: "Pending signature",
    CreditRequestStatus.PENDING_APPROVAL.value: "Pending HOD approval",
    CreditRequestStatus.PENDING_EMPLOYEE_APPROVAL.value: "Pending employee approval",
    CreditRequestStatus.APPROVED.value: "Approved (wallet credited)",
    CreditRequestStatus.REJECTED_BY_USER.value: "Rejected by user",
    CreditRequestStatus.REJECTED_BY_EMPLOYEE.value: "Rejected by employee",
    CreditRequestStatus.REJECTED_BY_HOD.value: "Rejected by HOD",
}

REDEMPTION_LABELS: dict[str, str] = {
    RedemptionStatus.PENDING.value: "Pending",
    RedemptionStatus.PROCESSING.value: "Processing",
    RedemptionStatus.COMPLETED.value: "Completed",
    RedemptionStatus.REJECTED.value: "Rejected (amount returned)",
}


def generate_mermaid_from_transitions(
    transitions: dict[Any, list[Any]],
    labels: dict[str, str],
    initial: Iterable[Any] = (),
    edge_labels: Optional[dict[tuple[Any, Any], str]] = None,
) -> str:
    """
    Build a stateDiagram-v2 from a ``{state: [targets]}`` mapping.

    States without outgoing transitions are drawn as final.
    """
    edge_labels = edge_labels or {}
    lines: list[str] = ["stateDiagram-v2"]

    all_states: set[str] = set()
    for source, targets in transitions.items():
        all_states.add(source.value)
        for target in targets:
            all_states.add(target.value)

    for state_value in sorted(all_states):
        lines.append(f"    {state_value} : {labels.get(state_value, state_value)}")

    lines.append("")
    for state in sorted(initial, key=lambda s: s.value):
        lines.append(f"    [*] --> {state.value}")

    lines.append("")
    for source, targets in transitions.items():
        for target in targets:
            label = edge_labels.get((source, target))
            suffix = f" : {label}" if label else ""
            lines.append(f"    {source.value} --> {target.value}{suffix}")

    for source, targets in transitions.items():
        if not targets:
            lines.append(f"    {source.value} --> [*]")

    return "\n".join(lines)


def credit_request_edge_labels() -> dict[tuple[CreditRequestStatus, CreditRequestStatus], str]:
    """Events per edge, with the request type when the row is type-specific"""
    grouped: dict[tuple[CreditRequestStatus, CreditRequestStatus], list[str]] = {}
    for row in TRANSITION_TABLE:
        text = row.event.value
        if row.request_type:
            text = f"{text} ({row.request_type.value})"
        grouped.setdefault((row.source, row.target), []).append(text)
    return {edge: " / ".join(events) for edge, events in grouped.items()}


def credit_request_initial_states() -> set[CreditRequestStatus]:
    return {
        initial_status(request_type, submitted_by_manager)
        for request_type in CreditRequestType
        for submitted_by_manager in (True, False)
    }


def generate_all_diagrams() -> dict[str, str]:
    """{title: mermaid source}"""
    return {
        "Credit request (CreditRequestStatus)": generate_mermaid_from_transitions(
            CREDIT_REQUEST_TRANSITIONS,
            CREDIT_REQUEST_LABELS,
            initial=credit_request_initial_states(),
            edge_labels=credit_request_edge_labels(),
        ),
        "Redemption (RedemptionStatus)": generate_mermaid_from_transitions(
            REDEMPTION_TRANSITIONS,
            REDEMPTION_LABELS,
            initial=[RedemptionStatus.PENDING],
        ),
    }


def format_diagrams_as_markdown(diagrams: dict[str, str]) -> str:
    sections: list[str] = []
    for name, mermaid_code in diagrams.items():
        sections.append(f"#### {name}\n")
        sections.append(f"```mermaid\n{mermaid_code}\n```\n")
    return "\n".join(sections)


def _section(markdown_content: str) -> str:
    return f"{START_MARKER}\n\n## State diagrams\n\n{markdown_content}\n{END_MARKER}"


_SECTION_RE = re.compile(re.escape(START_MARKER) + r".*?" + re.escape(END_MARKER), re.DOTALL)


def update_document(markdown_content: str, path: Path = DEFAULT_DOCUMENT) -> None:
    """Replace the marked section, or append it when the document has none"""
    new_section = _section(markdown_content)
    content = path.read_text(encoding="utf-8") if path.exists() else ""

    if START_MARKER in content:
        content = _SECTION_RE.sub(lambda _: new_section, content)
    else:
        content = (content.rstrip("\n") + "\n\n" if content else "") + new_section + "\n"

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    print(f"Updated: {path}")


def check_document(markdown_content: str, path: Path = DEFAULT_DOCUMENT) -> bool:
    """True when the marked section of ``path`` matches the transition tables"""
    if not path.exists():
        print(f"Error: {path} does not exist")
        return False

    match = _SECTION_RE.search(path.read_text(encoding="utf-8"))
    if not match:
        print(f"Error: no state diagram section in {path}")
        return False

    if match.group(0) == _section(markdown_content):
        print("State diagrams are in sync")
        return True

    print(f"Error: state diagrams in {path} are stale")
    print("Run: python scripts/generate_state_diagrams.py --update")
    return False


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Render Mermaid diagrams from the state machines")
    parser.add_argument("--update", action="store_true", help="rewrite the diagram document")
    parser.add_argument("--check", action="store_true", help="exit 1 when the document is stale (CI)")
    parser.add_argument("--path", type=Path, default=DEFAULT_DOCUMENT, help="diagram document")
    args = parser.parse_args(argv)

    markdown = format_diagrams_as_markdown(generate_all_diagrams())

    if args.check:
        return 0 if check_document(markdown, args.path) else 1
    if args.update:
        update_document(markdown, args.path)
    else:
        print(markdown)
    return 0


if __name__ == "__main__":
    sys.exit(main())
