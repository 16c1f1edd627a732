"""
Compliance checks.

Every check implements the same interface and is registered in an
ordered list at startup. Checks are independent: none reads another
check's outcome.
"""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Protocol

from analyzer.app.compliance.regulations import relevant_regulations
from analyzer.app.config import DEFAULT_CHECK_WEIGHTS
from analyzer.app.events import AnalysisEventScope, ProgressEventBus
from analyzer.app.prompts import PromptTemplate
from analyzer.app.schemas.analysis_input import AnalysisInput
from analyzer.app.schemas.compliance import CheckAssessment, CheckOutcome
from analyzer.app.schemas.stage import StageError, StageErrorKind
from analyzer.app.stage_executor import StageExecutor

logger = logging.getLogger(__name__)


class CheckExecutionError(Exception):
    """A check could not produce an outcome."""

    def __init__(self, check_name: str, error: StageError) -> None:
        super().__init__(f"{check_name}: {error.message}")
        self.check_name = check_name
        self.error = error

    @property
    def kind(self) -> StageErrorKind:
        return self.error.kind


class ComplianceCheck(Protocol):
    name: str
    description: str
    weight: float

    async def execute(
        self,
        analysis_input: AnalysisInput,
        *,
        run_id: str,
        timeout_seconds: float,
        bus: Optional[ProgressEventBus] = None,
    ) -> CheckOutcome:
        ...


# ----------------------------------------------------------------------
# Model-backed check
# ----------------------------------------------------------------------

class ModelComplianceCheck:
    """
    A compliance check answered by one model call.

    The prompt carries the check instructions and the reference
    regulation excerpts; the document is the material under analysis.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str,
        weight: float,
        template: PromptTemplate,
        executor: StageExecutor,
    ) -> None:
        self.name = name
        self.description = description
        self.weight = weight
        self._template = template
        self._executor = executor

    async def execute(
        self,
        analysis_input: AnalysisInput,
        *,
        run_id: str,
        timeout_seconds: float,
        bus: Optional[ProgressEventBus] = None,
    ) -> CheckOutcome:
        prompt = self._template.render(
            input_text=analysis_input.text,
            output_schema=CheckAssessment,
            regulations="\n\n".join(relevant_regulations(analysis_input)),
            document_type=analysis_input.document_type,
            jurisdiction=analysis_input.jurisdiction,
        )

        result = await self._executor.run(
            prompt=prompt,
            output_schema=CheckAssessment,
            run_id=run_id,
            bus=bus,
            scope=AnalysisEventScope.CHECK,
            user_id=analysis_input.user_id,
            timeout_seconds=timeout_seconds,
        )

        if isinstance(result, StageError):
            raise CheckExecutionError(self.name, result)

        return CheckOutcome.from_assessment(self.name, result.output)


# ----------------------------------------------------------------------
# Default registry (GDPR / Swiss DSG)
# ----------------------------------------------------------------------

_CHECK_HEADER = (
    "DOCUMENT TYPE: {document_type}\n"
    "JURISDICTION: {jurisdiction}\n\n"
    "RELEVANT REGULATIONS:\n{regulations}\n\n"
)

DEFAULT_CHECK_DEFINITIONS = [
    (
        "data_minimization",
        "Checks that only necessary personal data is processed",
        (
            "Assess the document against the data minimization principle.\n"
            "Check:\n"
            "1. Is only necessary data processed?\n"
            "2. Is the purpose clearly defined?\n"
            "3. Is there excessive data collection?\n"
            "4. Are retention periods appropriate?\n\n"
        ),
    ),
    (
        "lawful_basis",
        "Checks that a valid lawful basis for processing exists",
        (
            "Assess the lawful basis for processing under GDPR Art. 6 "
            "and the Swiss DSG.\n"
            "Check:\n"
            "1. Is a lawful basis stated?\n"
            "2. Is the lawful basis appropriate?\n"
            "3. For consent: is it freely given, specific and informed?\n"
            "4. For legitimate interest: is the balancing test documented?\n\n"
        ),
    ),
    (
        "consent",
        "Checks consent mechanisms for GDPR conformity",
        (
            "Assess consent mechanisms under GDPR Art. 7.\n"
            "Check:\n"
            "1. Is consent unambiguous and voluntary?\n"
            "2. Can users withdraw consent?\n"
            "3. Is granular consent possible?\n"
            "4. Is opt-in used instead of opt-out?\n\n"
        ),
    ),
    (
        "data_subject_rights",
        "Checks implementation of data subject rights under the GDPR",
        (
            "Assess the implementation of data subject rights "
            "(GDPR Art. 15-22).\n"
            "Check whether these rights are implemented:\n"
            "1. Right of access (Art. 15)\n"
            "2. Right to rectification (Art. 16)\n"
            "3. Right to erasure (Art. 17)\n"
            "4. Right to data portability (Art. 20)\n"
            "5. Right to object (Art. 21)\n\n"
        ),
    ),
]


def build_default_checks(
    executor: StageExecutor,
    *,
    weights: Optional[Mapping[str, float]] = None,
    default_weight: float = 0.1,
) -> List[ModelComplianceCheck]:
    """
    Build the default check registry in registration order.
    """
    weights = weights if weights is not None else DEFAULT_CHECK_WEIGHTS

    checks = [
        ModelComplianceCheck(
            name=name,
            description=description,
            weight=weights.get(name, default_weight),
            template=PromptTemplate(
                template_id=f"compliance.{name}.v1",
                stage_name=name,
                text=instructions + _CHECK_HEADER,
            ),
            executor=executor,
        )
        for name, description, instructions in DEFAULT_CHECK_DEFINITIONS
    ]

    logger.debug(
        "Compliance check registry built: %s",
        [check.name for check in checks],
    )
    return checks
