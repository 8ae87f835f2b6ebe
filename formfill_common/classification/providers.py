# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Classification providers.

A provider receives one batch of grouped candidates and returns structured
entries keyed by candidate id. The Bedrock provider asks an LLM; the
heuristic provider derives keys and types from the text alone and needs no
network access.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from formfill_common.bedrock import BedrockClient
from formfill_common.classification.models import ClassificationEntry
from formfill_common.config import DEFAULT_SYSTEM_PROMPT, DEFAULT_TASK_PROMPT
from formfill_common.exceptions import ProviderFailureError
from formfill_common.models import Candidate, FieldType
from formfill_common.utils import extract_json_from_text, normalize_key

logger = logging.getLogger(__name__)

FIELD_TYPE_NAMES = ", ".join(t.value for t in FieldType)


class ClassificationProvider(ABC):
    """Classifies one batch of candidates."""

    name = "base"

    @abstractmethod
    def classify(self, batch: List[Candidate]) -> Tuple[List[ClassificationEntry], Dict[str, Any]]:
        """
        Classify a batch of candidates.

        Returns:
            Tuple of (entries, metering)

        Raises:
            ProviderFailureError: If the batch could not be classified
        """


def format_candidate_list(candidates: List[Candidate]) -> str:
    """Render candidates as a numbered list with position and nearby context."""
    lines = []
    for idx, c in enumerate(candidates, start=1):
        line = f'{idx}. ID: {c.id}, Text: "{c.raw_text}", Position: ({c.bbox.x:.3f}, {c.bbox.y:.3f})'
        if c.nearby_text:
            line += f", Nearby: [{', '.join(c.nearby_text)}]"
        lines.append(line)
    return "\n".join(lines)


class BedrockClassificationProvider(ClassificationProvider):
    """Classifies candidates with an Amazon Bedrock model through the Converse API."""

    name = "bedrock"

    def __init__(self, config: Dict[str, Any] = None, bedrock_client: Optional[BedrockClient] = None):
        """
        Args:
            config: The ``classification`` configuration section
            bedrock_client: Optional pre-built BedrockClient
        """
        self.config = config or {}
        self.model_id = self.config.get("model")
        if not self.model_id:
            raise ValueError("No model ID specified in configuration for Bedrock")
        self.temperature = self.config.get("temperature", 0.0)
        self.top_k = self.config.get("top_k")
        self.max_tokens = self.config.get("max_tokens")
        self.system_prompt = self.config.get("system_prompt") or DEFAULT_SYSTEM_PROMPT
        self.task_prompt = self.config.get("task_prompt") or DEFAULT_TASK_PROMPT
        self.client = bedrock_client or BedrockClient()
        logger.info(f"Initialized Bedrock classification provider using model {self.model_id}")

    def classify(self, batch: List[Candidate]) -> Tuple[List[ClassificationEntry], Dict[str, Any]]:
        prompt = self.client.format_prompt(
            self.task_prompt,
            {
                "CANDIDATES": format_candidate_list(batch),
                "FIELD_TYPES": FIELD_TYPE_NAMES,
            },
            required_placeholders=["CANDIDATES"],
        )

        try:
            response = self.client.invoke_model(
                model_id=self.model_id,
                system_prompt=self.system_prompt,
                content=[{"text": prompt}],
                temperature=self.temperature,
                top_k=self.top_k,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise ProviderFailureError(f"Bedrock classification call failed: {e}", provider=self.name) from e

        response_text = self.client.extract_text_from_response(response)
        entries = self.parse_response_text(response_text)
        return entries, response.get("metering", {})

    def parse_response_text(self, response_text: str) -> List[ClassificationEntry]:
        """
        Parse the model output into entries.

        Accepts either ``{"fields": [...]}`` or a bare JSON list.

        Raises:
            ProviderFailureError: If no JSON field list can be parsed
        """
        try:
            parsed = json.loads(extract_json_from_text(response_text))
        except (TypeError, ValueError) as e:
            logger.error(f"Could not parse classification response: {response_text[:500]}")
            raise ProviderFailureError(f"Unparseable classification response: {e}", provider=self.name) from e

        raw_fields = parsed.get("fields") if isinstance(parsed, dict) else parsed
        if not isinstance(raw_fields, list):
            raise ProviderFailureError("Classification response has no field list", provider=self.name)

        return [ClassificationEntry.from_dict(item) for item in raw_fields if isinstance(item, dict)]


class HeuristicClassificationProvider(ClassificationProvider):
    """Keyword-based classification for offline use and tests."""

    name = "heuristic"

    TYPE_KEYWORDS = [
        (FieldType.SIGNATURE, ("sign",)),
        (FieldType.EMAIL, ("email", "e-mail")),
        (FieldType.PHONE, ("phone", "telephone", "mobile", "cell", "fax")),
        (FieldType.DATE, ("date", "dob", "birth")),
        (FieldType.ADDRESS, ("address", "street")),
        (FieldType.CHECKBOX, ("[ ]", "☐", "yes/no", "check")),
        (FieldType.NUMBER, ("ssn", "number", "zip", "amount", "age")),
    ]

    def classify(self, batch: List[Candidate]) -> Tuple[List[ClassificationEntry], Dict[str, Any]]:
        entries = []
        for candidate in batch:
            text = candidate.raw_text.strip()
            label = re.sub(r"[\s:*_]+$", "", text).strip() or text
            entries.append(ClassificationEntry(
                candidate_id=candidate.id,
                key=normalize_key(label),
                label=label,
                type=self._guess_type(text).value,
                required="*" in text,
                confidence=candidate.confidence,
            ))
        return entries, {}

    def _guess_type(self, text: str) -> FieldType:
        lowered = text.lower()
        for field_type, keywords in self.TYPE_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return field_type
        return FieldType.TEXT


def select_classification_provider(config: Dict[str, Any],
                                   bedrock_client: Optional[BedrockClient] = None) -> ClassificationProvider:
    """
    Choose the classification provider from the ``classification`` section.

    Unknown backends fall back to Bedrock with a warning.
    """
    config = config or {}
    backend = str(config.get("backend", "bedrock")).lower()
    if backend == "heuristic":
        logger.info("Using heuristic classification provider")
        return HeuristicClassificationProvider()
    if backend != "bedrock":
        logger.warning(f"Invalid classification backend '{backend}', falling back to 'bedrock'")
    return BedrockClassificationProvider(config, bedrock_client=bedrock_client)
