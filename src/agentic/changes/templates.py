from __future__ import annotations

PROPOSAL_TEMPLATE = """# Proposal: {name}

## Why

<!-- Why is this change needed? Summarise the problem it solves. -->

## What Changes

<!-- Describe the behaviour this change introduces. -->

## Source Requirements

{source_line}

{requirements}
"""

TASK_LIST_TEMPLATE = """# Tasks: {name}

<!--
Break the proposal into small, independently verifiable tasks.
Use a numbered list or checkboxes, one task per line, e.g.

  1. Create the data model (ver [details](tasks/01-create-the-data-model.md))
  - [ ] Add the API endpoint

Run the import once the list is filled in.
-->
"""

TASK_DETAIL_TEMPLATE = """# {title}

## Description

<!-- What needs to be done and why. -->

## Prerequisites

- [ ] <!-- inputs or tasks this depends on -->

## Acceptance Criteria

- [ ] <!-- observable outcome -->

## Technical Notes

<!-- Implementation hints, files to touch, edge cases. -->
"""


def render_proposal(name: str, source_file: str = "", requirements: str = "") -> str:
    source_line = f"Seeded from `{source_file}`." if source_file else "No source file provided."
    body = requirements.strip() or "<!-- Paste or summarise the requirements here. -->"
    return PROPOSAL_TEMPLATE.format(name=name, source_line=source_line, requirements=body)


def render_task_list(name: str) -> str:
    return TASK_LIST_TEMPLATE.format(name=name)


def render_task_detail(title: str) -> str:
    return TASK_DETAIL_TEMPLATE.format(title=title)
