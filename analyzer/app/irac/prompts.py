"""
IRAC stage prompt templates.

Each stage's instructions are followed by the validated output of every
previous stage, so stage k always sees stages 1..k-1.
"""

from __future__ import annotations

import json
from typing import Mapping

from analyzer.app.model_port import RenderedPrompt
from analyzer.app.prompts import PromptTemplate, describe_output_schema, render_json_section
from analyzer.app.schemas.analysis_input import AnalysisInput
from analyzer.app.schemas.irac import ClauseAnalysis, IracStage
from analyzer.app.schemas.stage import StageOutput


_DOCUMENT_HEADER = (
    "DOCUMENT TYPE: {document_type}\n"
    "JURISDICTION: {jurisdiction}\n"
    "CALLER CONTEXT: {context}\n"
)


ISSUE_TEMPLATE = PromptTemplate(
    template_id="irac.issue.v1",
    stage_name=IracStage.ISSUE.value,
    text=(
        "As a legal expert for the given jurisdiction, identify the main "
        "legal issues raised by the document under analysis. Rate each "
        "issue's severity, name its area of law and its potential "
        "consequences. List clauses that are missing and wording that is "
        "ambiguous.\n\n" + _DOCUMENT_HEADER
    ),
)

RULE_TEMPLATE = PromptTemplate(
    template_id="irac.rule.v1",
    stage_name=IracStage.RULE.value,
    text=(
        "Identify the statutes, legal principles and precedents that "
        "govern each previously identified issue. Cite exact statute "
        "references and interpret them for this jurisdiction.\n\n"
        + _DOCUMENT_HEADER
    ),
)

APPLICATION_TEMPLATE = PromptTemplate(
    template_id="irac.application.v1",
    stage_name=IracStage.APPLICATION.value,
    text=(
        "Apply the identified rules to the facts of the document. "
        "Summarize the relevant fact pattern, give a legal analysis and a "
        "risk assessment, and recommend concrete actions.\n\n"
        + _DOCUMENT_HEADER
    ),
)

CONCLUSION_TEMPLATE = PromptTemplate(
    template_id="irac.conclusion.v1",
    stage_name=IracStage.CONCLUSION.value,
    text=(
        "Conclude the IRAC analysis. Give an overall assessment and a "
        "compliance status, list the critical issues and recommendations, "
        "and state your confidence between 0 and 1.\n\n"
        + _DOCUMENT_HEADER
    ),
)

STAGE_TEMPLATES: Mapping[IracStage, PromptTemplate] = {
    IracStage.ISSUE: ISSUE_TEMPLATE,
    IracStage.RULE: RULE_TEMPLATE,
    IracStage.APPLICATION: APPLICATION_TEMPLATE,
    IracStage.CONCLUSION: CONCLUSION_TEMPLATE,
}


CLAUSE_TEMPLATE = PromptTemplate(
    template_id="irac.clause.v1",
    stage_name="clause",
    text=(
        "Analyze the clause under analysis in the context of the given "
        "jurisdiction. Assess its legal validity, its potential risks and "
        "problems, and suggest improvements.\n\n"
        "CLAUSE TYPE: {clause_type}\n"
        "JURISDICTION: {jurisdiction}\n"
        "CONTRACT CONTEXT: {contract_context}\n"
    ),
)


def render_stage_prompt(
    template: PromptTemplate,
    *,
    analysis_input: AnalysisInput,
    prior_outputs: Mapping[str, StageOutput],
    output_schema,
) -> RenderedPrompt:
    """
    Render a stage prompt whose instructions embed every prior output.
    """
    base = template.render(
        input_text=analysis_input.text,
        document_type=analysis_input.document_type,
        jurisdiction=analysis_input.jurisdiction,
        context=json.dumps(
            analysis_input.context,
            ensure_ascii=False,
            default=str,
        ),
    )

    sections = [base.text]
    for stage_name, stage_output in prior_outputs.items():
        sections.append(
            render_json_section(
                f"{stage_name.upper()} STAGE OUTPUT",
                stage_output.output.model_dump(mode="json"),
            )
        )
    sections.append(describe_output_schema(output_schema))

    return base.model_copy(update={"text": "\n\n".join(sections)})


def render_clause_prompt(
    *,
    clause_text: str,
    clause_type: str,
    contract_context: str,
    jurisdiction: str,
) -> RenderedPrompt:
    return CLAUSE_TEMPLATE.render(
        input_text=clause_text,
        output_schema=ClauseAnalysis,
        clause_type=clause_type,
        jurisdiction=jurisdiction,
        contract_context=contract_context or "none provided",
    )
