"""Model-backed code generation and review."""

from __future__ import annotations

import json
import logging
import re
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from .constants import DEFAULT_CODE_MODEL
from .exceptions import AiflowError
from .gateways.base import ChatCompletionRequest, ChatMessage, ModelGateway

logger = logging.getLogger(__name__)

CODE_BLOCK = re.compile(r"```[\w+-]*\n([\s\S]*?)```")
EXPLANATION = re.compile(r"```[\w+-]*\n[\s\S]*?```\s*([\s\S]*?)(?:##|$)")
SUGGESTIONS = re.compile(r"(?:##\s*Suggestions|Suggestions:)\s*([\s\S]*?)(?:##|$)", re.IGNORECASE)
LIST_MARKER = re.compile(r"^(?:\d+\.|[-*])\s*")

DEFAULT_REVIEW_FOCUS = "security, performance, readability, maintainability, and bugs"

GENERATION_SYSTEM_PROMPT = """You are an expert software developer specializing in {language}{framework}.
Your task is to generate clean, efficient, and well-documented code based on the user's description.
Always include comments explaining key parts of the code.
Format your response as follows:
1. The code block with proper syntax highlighting
2. An explanation of how the code works
3. Any suggestions for improvements or alternatives"""

REVIEW_SYSTEM_PROMPT = """You are an expert code reviewer specializing in {language}.
Your task is to review the provided code and identify issues related to {focus}.
Format your response as JSON with the following structure:
{{
  "issues": [
    {{
      "type": "security|performance|readability|maintainability|bug",
      "severity": "low|medium|high|critical",
      "line": 42,
      "description": "Description of the issue",
      "suggestion": "Suggestion to fix the issue"
    }}
  ],
  "summary": "Overall summary of the code review",
  "score": 85,
  "suggestions": ["Suggestion 1", "Suggestion 2"]
}}"""


class CodeGenerationRequest(BaseModel):
    language: str
    description: str
    context: Optional[str] = None
    framework: Optional[str] = None
    libraries: Optional[List[str]] = None
    examples: Optional[List[str]] = None


class CodeGenerationResult(BaseModel):
    code: str
    explanation: str
    language: str
    suggestions: Optional[List[str]] = None


class CodeReviewRequest(BaseModel):
    code: str
    language: str
    focus: Optional[List[str]] = None


class CodeReviewIssue(BaseModel):
    type: str
    severity: str
    line: Optional[int] = None
    description: str
    suggestion: str = ""


class CodeReviewResult(BaseModel):
    issues: List[CodeReviewIssue] = Field(default_factory=list)
    summary: str = ""
    score: float = 0
    suggestions: List[str] = Field(default_factory=list)


def build_generation_prompt(request: CodeGenerationRequest) -> str:
    prompt = f"Generate {request.language} code for: {request.description}\n\n"
    if request.context:
        prompt += f"Context: {request.context}\n\n"
    if request.framework:
        prompt += f"Framework: {request.framework}\n\n"
    if request.libraries:
        prompt += f"Libraries to use: {', '.join(request.libraries)}\n\n"
    if request.examples:
        prompt += "Examples for reference:\n\n"
        for example in request.examples:
            prompt += f"{example}\n\n"
    return prompt


def build_review_prompt(request: CodeReviewRequest) -> str:
    prompt = f"Review the following {request.language} code:\n\n"
    prompt += f"```{request.language}\n{request.code}\n```\n\n"
    if request.focus:
        prompt += f"Focus on the following aspects: {', '.join(request.focus)}\n\n"
    return prompt


def parse_generation(content: str, language: str) -> CodeGenerationResult:
    """Split a model answer into code, explanation and suggestions."""
    code_match = CODE_BLOCK.search(content)
    explanation_match = EXPLANATION.search(content)
    suggestions_match = SUGGESTIONS.search(content)

    suggestions = None
    if suggestions_match and suggestions_match.group(1).strip():
        suggestions = [
            LIST_MARKER.sub("", line).strip()
            for line in suggestions_match.group(1).strip().splitlines()
            if line.strip()
        ]

    return CodeGenerationResult(
        code=code_match.group(1) if code_match else "",
        explanation=explanation_match.group(1).strip() if explanation_match else "",
        language=language,
        suggestions=suggestions,
    )


class CodeGenerator:
    def __init__(self, gateway: ModelGateway, model: str = DEFAULT_CODE_MODEL) -> None:
        self.gateway = gateway
        self.model = model

    async def generate_code(self, request: CodeGenerationRequest) -> CodeGenerationResult:
        framework = f" and {request.framework}" if request.framework else ""
        response = await self.gateway.create_chat_completion(
            ChatCompletionRequest(
                model=self.model,
                messages=[
                    ChatMessage(
                        role="system",
                        content=GENERATION_SYSTEM_PROMPT.format(
                            language=request.language, framework=framework
                        ),
                    ),
                    ChatMessage(role="user", content=build_generation_prompt(request)),
                ],
                temperature=0.2,
                max_tokens=4000,
            )
        )
        return parse_generation(response.choices[0].message.content or "", request.language)

    async def review_code(self, request: CodeReviewRequest) -> CodeReviewResult:
        focus = ", ".join(request.focus) if request.focus else DEFAULT_REVIEW_FOCUS
        response = await self.gateway.create_chat_completion(
            ChatCompletionRequest(
                model=self.model,
                messages=[
                    ChatMessage(
                        role="system",
                        content=REVIEW_SYSTEM_PROMPT.format(language=request.language, focus=focus),
                    ),
                    ChatMessage(role="user", content=build_review_prompt(request)),
                ],
                temperature=0.2,
                max_tokens=4000,
                response_format={"type": "json_object"},
            )
        )
        content = response.choices[0].message.content or ""
        try:
            return CodeReviewResult.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.error(f"Error parsing code review result: {exc}")
            raise AiflowError("Failed to parse code review result") from exc
