# Copyright 2025 KTTC AI (https://github.com/kttc-ai)
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Prompt construction for structured document analysis.

Builds the single prompt that asks a model to extract the fields of an
AnalysisSchema from a text and to answer with JSON. Two prompt styles exist:
cloud models get a plain request, local models get a stricter "JSON only"
wording because they tend to add commentary around the payload.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..models import AnalysisSchema


@dataclass(frozen=True)
class AnalysisPromptStyle:
    """Wording used around the field list of an analysis prompt.

    Attributes:
        header: Opening instruction
        fields_heading: Line introducing the field list
        directive: Closing "respond with JSON" instruction
    """

    header: str
    fields_heading: str
    directive: str


STANDARD_STYLE = AnalysisPromptStyle(
    header="Analyze the following text and extract structured information.",
    fields_heading="Please extract the following fields:",
    directive="Please respond with valid JSON containing the extracted fields.",
)

STRICT_JSON_STYLE = AnalysisPromptStyle(
    header="Analyze the following text and extract structured information in JSON format.",
    fields_heading="Extract the following fields:",
    directive=(
        "Respond ONLY with valid JSON containing the extracted fields. "
        "Do not include any explanatory text."
    ),
)


def format_field_lines(schema: AnalysisSchema) -> list[str]:
    """Format one ``- name (type) [REQUIRED]: description`` line per schema field.

    Args:
        schema: Analysis schema

    Returns:
        Lines in schema field order
    """
    lines = []
    for name, definition in schema.fields.items():
        line = f"- {name} ({definition.type})"
        if definition.required:
            line += " [REQUIRED]"
        if definition.description is not None:
            line += f": {definition.description}"
        lines.append(line)
    return lines


def build_analysis_prompt(
    text: str,
    schema: AnalysisSchema,
    style: AnalysisPromptStyle = STANDARD_STYLE,
) -> str:
    """Build the extraction prompt for a document.

    Args:
        text: Document text to analyze
        schema: Fields to extract and optional instructions
        style: Prompt wording

    Returns:
        Prompt string

    Example:
        >>> schema = AnalysisSchema(document_type="invoice").add_field("total", "number", True)
        >>> print(build_analysis_prompt("Total: 42 EUR", schema))
        Analyze the following text and extract structured information.
        ...
    """
    parts = [
        style.header,
        "",
        "Text to analyze:",
        text,
        "",
        style.fields_heading,
        *format_field_lines(schema),
    ]
    prompt = "\n".join(parts) + "\n"

    if schema.instructions is not None:
        prompt += f"\nAdditional instructions: {schema.instructions}"

    prompt += f"\n{style.directive}"
    return prompt


__all__ = [
    "AnalysisPromptStyle",
    "STANDARD_STYLE",
    "STRICT_JSON_STYLE",
    "build_analysis_prompt",
    "format_field_lines",
]
