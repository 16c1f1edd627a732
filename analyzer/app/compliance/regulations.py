"""
Reference regulation excerpts supplied to compliance check prompts.

Callers may provide their own excerpts under
`AnalysisInput.context["regulations"]` (a string or a list of strings);
otherwise the built-in excerpts below are used.
"""

from __future__ import annotations

from typing import List, NamedTuple

from analyzer.app.schemas.analysis_input import AnalysisInput


class RegulationExcerpt(NamedTuple):
    source: str
    article: str
    text: str

    def render(self) -> str:
        return f"{self.source} Art. {self.article}:\n{self.text}"


DEFAULT_REGULATIONS: List[RegulationExcerpt] = [
    RegulationExcerpt(
        source="GDPR",
        article="5",
        text=(
            "Principles relating to processing of personal data: personal "
            "data shall be processed lawfully, fairly and in a transparent "
            "manner in relation to the data subject ('lawfulness, fairness "
            "and transparency')."
        ),
    ),
    RegulationExcerpt(
        source="DSG",
        article="6",
        text=(
            "Principles: personal data must be processed lawfully. "
            "Processing must be carried out in good faith and must be "
            "proportionate."
        ),
    ),
]


def relevant_regulations(analysis_input: AnalysisInput) -> List[str]:
    supplied = analysis_input.context.get("regulations")

    if isinstance(supplied, str) and supplied.strip():
        return [supplied]

    if isinstance(supplied, list):
        excerpts = [str(item) for item in supplied if str(item).strip()]
        if excerpts:
            return excerpts

    return [regulation.render() for regulation in DEFAULT_REGULATIONS]
