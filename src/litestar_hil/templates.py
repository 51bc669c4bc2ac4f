"""Builtin workflow templates.

These templates describe the title-closing workflows the engine was built
for. Applications register them with the plugin or ship their own.

Example:
    >>> from litestar_hil.templates import BUILTIN_TEMPLATES
    >>> config = HilPluginConfig(session_maker=session_maker, templates=BUILTIN_TEMPLATES)
"""

from __future__ import annotations

from litestar_hil.core.definition import TaskBlueprint, WorkflowTemplate
from litestar_hil.core.types import ExecutorKind, WorkflowType

__all__ = ["BUILTIN_TEMPLATES", "HOA_ACQUISITION", "MUNI_LIEN_SEARCH", "PAYOFF_REQUEST"]


PAYOFF_REQUEST = WorkflowTemplate(
    workflow_type=WorkflowType.PAYOFF_REQUEST,
    version="1.0.0",
    description="Obtain a mortgage payoff statement from the lender and deliver it to the closer.",
    is_business_hours_only=True,
    tasks=(
        TaskBlueprint(
            task_type="identify_lender",
            title="Identify lender and loan number",
            executor_kind=ExecutorKind.AI,
            sequence_order=1,
            default_sla_hours=4,
            alert_offsets_hours=(1,),
        ),
        TaskBlueprint(
            task_type="submit_payoff_request",
            title="Submit payoff request",
            executor_kind=ExecutorKind.AI,
            sequence_order=2,
            default_sla_hours=4,
            dependencies=frozenset({"identify_lender"}),
            alert_offsets_hours=(1,),
        ),
        TaskBlueprint(
            task_type="process_payoff_statement",
            title="Extract payoff statement",
            executor_kind=ExecutorKind.AI,
            sequence_order=3,
            default_sla_hours=12,
            dependencies=frozenset({"submit_payoff_request"}),
            alert_offsets_hours=(3, 1),
        ),
        TaskBlueprint(
            task_type="verify_payoff_amount",
            title="Verify payoff amount",
            executor_kind=ExecutorKind.HUMAN,
            sequence_order=4,
            default_sla_hours=2,
            dependencies=frozenset({"process_payoff_statement"}),
            max_retries=0,
            alert_offsets_hours=(1,),
        ),
    ),
)


MUNI_LIEN_SEARCH = WorkflowTemplate(
    workflow_type=WorkflowType.MUNI_LIEN_SEARCH,
    version="1.0.0",
    description="Search municipal records for open liens, permits and violations.",
    is_business_hours_only=True,
    alert_offsets_hours=(2, 1),
    tasks=(
        TaskBlueprint(
            task_type="research_municipality",
            title="Research municipality requirements",
            executor_kind=ExecutorKind.AI,
            sequence_order=1,
            default_sla_hours=8,
        ),
        TaskBlueprint(
            task_type="request_lien_letters",
            title="Request lien letters",
            executor_kind=ExecutorKind.AI,
            sequence_order=2,
            default_sla_hours=8,
            dependencies=frozenset({"research_municipality"}),
        ),
        TaskBlueprint(
            task_type="process_lien_documents",
            title="Process lien documents",
            executor_kind=ExecutorKind.AI,
            sequence_order=3,
            default_sla_hours=4,
            dependencies=frozenset({"request_lien_letters"}),
            alert_offsets_hours=(1,),
        ),
        TaskBlueprint(
            task_type="generate_lien_report",
            title="Generate lien report",
            executor_kind=ExecutorKind.HUMAN,
            sequence_order=4,
            default_sla_hours=4,
            dependencies=frozenset({"process_lien_documents"}),
            alert_offsets_hours=(1,),
        ),
    ),
)


HOA_ACQUISITION = WorkflowTemplate(
    workflow_type=WorkflowType.HOA_ACQUISITION,
    version="1.0.0",
    description="Identify the HOA and collect its estoppel and governing documents.",
    is_business_hours_only=True,
    tasks=(
        TaskBlueprint(
            task_type="identify_hoa",
            title="Identify HOA",
            executor_kind=ExecutorKind.AI,
            sequence_order=1,
            default_sla_hours=16,
            alert_offsets_hours=(4, 2),
        ),
        TaskBlueprint(
            task_type="research_hoa_contact",
            title="Research HOA management contact",
            executor_kind=ExecutorKind.AI,
            sequence_order=2,
            default_sla_hours=8,
            dependencies=frozenset({"identify_hoa"}),
            alert_offsets_hours=(2, 1),
        ),
        TaskBlueprint(
            task_type="request_estoppel",
            title="Request estoppel certificate",
            executor_kind=ExecutorKind.AI,
            sequence_order=3,
            default_sla_hours=8,
            dependencies=frozenset({"research_hoa_contact"}),
            alert_offsets_hours=(2, 1),
        ),
        TaskBlueprint(
            task_type="collect_governing_documents",
            title="Collect governing documents",
            executor_kind=ExecutorKind.AI,
            sequence_order=4,
            default_sla_hours=8,
            dependencies=frozenset({"research_hoa_contact"}),
            alert_offsets_hours=(2, 1),
        ),
        TaskBlueprint(
            task_type="process_hoa_documents",
            title="Review HOA documents",
            executor_kind=ExecutorKind.HUMAN,
            sequence_order=5,
            default_sla_hours=12,
            dependencies=frozenset({"request_estoppel", "collect_governing_documents"}),
            alert_offsets_hours=(3, 1),
        ),
    ),
)


BUILTIN_TEMPLATES: tuple[WorkflowTemplate, ...] = (PAYOFF_REQUEST, MUNI_LIEN_SEARCH, HOA_ACQUISITION)
