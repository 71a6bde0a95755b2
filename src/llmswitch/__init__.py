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

"""
llmswitch - LLM provider orchestration

Routes text generation and structured extraction requests to one of several
interchangeable LLM backends, keeps a single shared "active" backend,
enforces per-backend request ceilings and fails over to an alternate
backend when the active one fails.
"""

__version__ = "0.1.0"

from llmswitch.llm import (
    AnalysisSchema,
    CompletionOptions,
    LLMResponse,
    StructuredResponse,
)
from llmswitch.llm.multi_provider import LLMOrchestrator

__all__ = [
    "AnalysisSchema",
    "CompletionOptions",
    "LLMOrchestrator",
    "LLMResponse",
    "StructuredResponse",
    "__version__",
]
