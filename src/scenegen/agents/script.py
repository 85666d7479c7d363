"""Script decomposition agent."""

import json
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import DecompositionError
from .base import BaseAgent


@dataclass
class DecompositionInput:
    """Input data for the script decomposer."""

    script: str
    target_scene_count: Optional[int] = None


def extract_json(response: str) -> str:
    """Extract JSON from a response that may contain markdown or other text."""
    # Try to find JSON in code blocks
    if "```json" in response:
        start = response.find("```json") + 7
        end = response.find("```", start)
        if end > start:
            return response[start:end].strip()

    if "```" in response:
        start = response.find("```") + 3
        end = response.find("```", start)
        if end > start:
            return response[start:end].strip()

    # Try to find raw JSON array or object, whichever opens first
    candidates = [
        (response.find(start_char), start_char, end_char)
        for start_char, end_char in (("[", "]"), ("{", "}"))
    ]
    for start, start_char, end_char in sorted(c for c in candidates if c[0] != -1):
        depth = 0
        in_string = False
        escaped = False
        for i, char in enumerate(response[start:], start):
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == start_char:
                depth += 1
            elif char == end_char:
                depth -= 1
                if depth == 0:
                    return response[start:i + 1]

    # Return as-is if no JSON structure found
    return response.strip()


def normalize_prompts(data: Any) -> list[str]:
    """Validate a decoded prompt list.

    Items are stripped and blank items dropped. Duplicates are kept since a
    script may legitimately revisit a scene. Non-string items reject the
    whole list.

    Raises:
        DecompositionError: If the data is not a non-empty list of strings.
    """
    if isinstance(data, dict):
        data = data.get("prompts", data.get("scenes"))

    if not isinstance(data, list):
        raise DecompositionError("Response does not contain a list of prompts")

    prompts: list[str] = []
    for index, item in enumerate(data):
        if not isinstance(item, str):
            raise DecompositionError(
                f"Prompt {index} is a {type(item).__name__}, expected a string"
            )
        text = item.strip()
        if text:
            prompts.append(text)

    if not prompts:
        raise DecompositionError("Could not generate any prompts from the script.")
    return prompts


class ScriptDecomposerAgent(BaseAgent[DecompositionInput, list[str]]):
    """Breaks a script into one image prompt per scene."""

    @property
    def name(self) -> str:
        return "ScriptDecomposerAgent"

    @property
    def system_prompt(self) -> str:
        return (
            "You are a screenwriting assistant. Output valid JSON only, with no "
            "additional text or markdown formatting. Return a JSON array of strings, one "
            "image prompt per scene."
        )

    def run(self, input_data: DecompositionInput) -> list[str]:
        """Decompose the script into prompts.

        Raises:
            DecompositionError: If the response is not a usable prompt list.
        """
        self._logger.info(
            f"Decomposing script ({len(input_data.script)} chars, "
            f"target scenes: {input_data.target_scene_count or 'auto'})"
        )

        response = self._create_message(
            prompt=self._build_prompt(input_data),
            max_tokens=4096,
            temperature=0.7,
        )

        json_str = extract_json(response)
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            self._logger.error(f"Failed to parse JSON: {e}")
            self._logger.debug(f"Raw response: {response}")
            raise DecompositionError(f"Invalid JSON in response: {e}") from e

        prompts = normalize_prompts(data)
        self._logger.info(f"Decomposed script into {len(prompts)} prompts")
        return prompts

    def decompose(self, script: str, target_scene_count: Optional[int] = None) -> list[str]:
        """Script decomposer entry point used by the generation pipeline."""
        return self.run(DecompositionInput(script=script, target_scene_count=target_scene_count))

    def _build_prompt(self, input_data: DecompositionInput) -> str:
        """Build the user prompt for script decomposition."""
        if input_data.target_scene_count:
            instruction = (
                f"Analyze the following script and generate exactly "
                f"{input_data.target_scene_count} concise and visually descriptive "
                f"prompts for an AI image generator."
            )
        else:
            instruction = (
                "Analyze the following script and break it down into distinct scenes. "
                "For each scene, generate a concise and visually descriptive prompt "
                "for an AI image generator."
            )

        return "\n".join([
            instruction,
            "The output must be a JSON array of strings. "
            "Do not include any other text outside the JSON array.",
            "",
            "SCRIPT:",
            input_data.script,
        ])
