# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Bedrock client module for interacting with Amazon Bedrock models.

This module provides a class-based interface for invoking Bedrock models
through the Converse API with retry logic for throttling errors.
"""

import copy
import logging
import os
import time
from typing import Any, Dict, List, Optional, Union

import boto3
from botocore.exceptions import ClientError

from formfill_common.utils import calculate_backoff

logger = logging.getLogger(__name__)

# Default retry settings
DEFAULT_MAX_RETRIES = 8
DEFAULT_INITIAL_BACKOFF = 2  # seconds
DEFAULT_MAX_BACKOFF = 300    # 5 minutes

RETRYABLE_ERRORS = [
    'ThrottlingException',
    'ServiceQuotaExceededException',
    'RequestLimitExceeded',
    'TooManyRequestsException',
    'ServiceUnavailableException',
    'ModelErrorException',
]


class BedrockClient:
    """Client for interacting with Amazon Bedrock models."""

    def __init__(
        self,
        region: Optional[str] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        metrics_enabled: bool = True,
        client=None,
    ):
        """
        Initialize a Bedrock client.

        Args:
            region: AWS region (defaults to AWS_REGION env var or us-west-2)
            max_retries: Maximum number of retry attempts
            initial_backoff: Initial backoff time in seconds
            max_backoff: Maximum backoff time in seconds
            metrics_enabled: Whether to publish metrics
            client: Optional pre-built bedrock-runtime client
        """
        self.region = region or os.environ.get('AWS_REGION', 'us-west-2')
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.metrics_enabled = metrics_enabled
        self._client = client

    @property
    def client(self):
        """Lazy-loaded Bedrock client."""
        if self._client is None:
            self._client = boto3.client('bedrock-runtime', region_name=self.region)
        return self._client

    def __call__(self, **kwargs) -> Dict[str, Any]:
        """Allow instances to be used wherever an invoke function is expected."""
        return self.invoke_model(**kwargs)

    def invoke_model(
        self,
        model_id: str,
        system_prompt: Union[str, List[Dict[str, str]]],
        content: List[Dict[str, Any]],
        temperature: Union[float, str] = 0.0,
        top_k: Optional[Union[float, str]] = None,
        max_tokens: Optional[int] = None,
        max_retries: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Invoke a Bedrock model with retry logic.

        Args:
            model_id: The Bedrock model ID (e.g., 'anthropic.claude-3-sonnet-20240229-v1:0')
            system_prompt: The system prompt as string or list of content objects
            content: The content for the user message
            temperature: The temperature parameter for model inference (float or string)
            top_k: Optional top_k parameter for Anthropic models (float or string)
            max_tokens: Optional cap on generated tokens
            max_retries: Optional override for the instance's max_retries setting

        Returns:
            Dict with the raw Bedrock "response" and "metering" information
        """
        self._put_metric('BedrockRequestsTotal', 1)

        effective_max_retries = max_retries if max_retries is not None else self.max_retries

        if isinstance(system_prompt, str):
            formatted_system_prompt = [{"text": system_prompt}]
        else:
            formatted_system_prompt = system_prompt

        messages = [{"role": "user", "content": content}]

        if isinstance(temperature, str):
            try:
                temperature = float(temperature)
            except ValueError:
                logger.warning(f"Failed to convert temperature value '{temperature}' to float. Using default 0.0")
                temperature = 0.0

        inference_config = {"temperature": float(temperature)}
        if max_tokens:
            inference_config["maxTokens"] = int(max_tokens)

        additional_model_fields = None
        if "anthropic" in model_id.lower() and top_k is not None:
            try:
                additional_model_fields = {"top_k": int(float(top_k))}
            except (TypeError, ValueError):
                logger.warning(f"Failed to convert top_k value '{top_k}'. Not using top_k.")

        converse_params = {
            "modelId": model_id,
            "messages": messages,
            "system": formatted_system_prompt,
            "inferenceConfig": inference_config,
        }
        if additional_model_fields:
            converse_params["additionalModelRequestFields"] = additional_model_fields

        guardrail_config = self.get_guardrail_config()
        if guardrail_config:
            converse_params["guardrailConfig"] = guardrail_config

        request_start_time = time.time()

        return self._invoke_with_retry(
            converse_params=converse_params,
            retry_count=0,
            max_retries=effective_max_retries,
            request_start_time=request_start_time
        )

    def _invoke_with_retry(
        self,
        converse_params: Dict[str, Any],
        retry_count: int,
        max_retries: int,
        request_start_time: float,
    ) -> Dict[str, Any]:
        """
        Recursive helper method to handle retries for Bedrock invocation.

        Args:
            converse_params: Parameters for the Bedrock converse API call
            retry_count: Current retry attempt (0-based)
            max_retries: Maximum number of retry attempts
            request_start_time: Time when the original request started

        Returns:
            Bedrock response object with metering information

        Raises:
            ClientError: The last error encountered if max retries are exceeded
        """
        try:
            logger.info(f"Bedrock request attempt {retry_count + 1}/{max_retries}:")
            logger.debug(f"  - model: {converse_params['modelId']}")
            logger.debug(f"  - inferenceConfig: {converse_params['inferenceConfig']}")
            logger.debug(f"  - messages: {self._sanitize_messages_for_logging(converse_params['messages'])}")

            attempt_start_time = time.time()
            response = self.client.converse(**converse_params)
            duration = time.time() - attempt_start_time

            logger.debug(f"Bedrock request successful after {retry_count + 1} attempts. Duration: {duration:.2f}s")
            logger.debug(f"Response: {self._sanitize_response_for_logging(response)}")

            self._put_metric('BedrockRequestsSucceeded', 1)
            self._put_metric('BedrockRequestLatency', duration * 1000, 'Milliseconds')
            if retry_count > 0:
                self._put_metric('BedrockRetrySuccess', 1)

            total_duration = time.time() - request_start_time
            self._put_metric('BedrockTotalLatency', total_duration * 1000, 'Milliseconds')

            usage = response.get('usage', {})
            return {
                "response": response,
                "metering": {
                    f"bedrock/{converse_params['modelId']}": {
                        **usage
                    }
                }
            }

        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']

            if error_code not in RETRYABLE_ERRORS:
                logger.error(f"Non-retryable Bedrock error: {error_code} - {error_message}")
                self._put_metric('BedrockRequestsFailed', 1)
                self._put_metric('BedrockNonRetryableErrors', 1)
                raise

            self._put_metric('BedrockThrottles', 1)

            if retry_count >= max_retries:
                logger.error(f"Max retries ({max_retries}) exceeded. Last error: {error_message}")
                self._put_metric('BedrockRequestsFailed', 1)
                self._put_metric('BedrockMaxRetriesExceeded', 1)
                raise

            backoff = calculate_backoff(retry_count, self.initial_backoff, self.max_backoff)
            logger.warning(f"Bedrock throttling occurred (attempt {retry_count + 1}/{max_retries}). "
                           f"Error: {error_message}. "
                           f"Backing off for {backoff:.2f}s")
            time.sleep(backoff)

            return self._invoke_with_retry(
                converse_params=converse_params,
                retry_count=retry_count + 1,
                max_retries=max_retries,
                request_start_time=request_start_time,
            )

    def get_guardrail_config(self) -> Optional[Dict[str, str]]:
        """
        Get guardrail configuration from environment if available.

        Returns:
            Optional guardrail configuration dict with id and version
        """
        guardrail_env = os.environ.get("GUARDRAIL_ID_AND_VERSION", "")
        if not guardrail_env:
            return None

        try:
            guardrail_id, guardrail_version = guardrail_env.split(":")
            if guardrail_id and guardrail_version:
                logger.debug(f"Using Bedrock Guardrail ID: {guardrail_id}, Version: {guardrail_version}")
                return {
                    "guardrailIdentifier": guardrail_id,
                    "guardrailVersion": guardrail_version,
                    "trace": "enabled"
                }
        except ValueError:
            logger.warning(f"Invalid GUARDRAIL_ID_AND_VERSION format: {guardrail_env}. Expected format: 'id:version'")

        return None

    def extract_text_from_response(self, response: Dict[str, Any]) -> str:
        """
        Extract text from a Bedrock response.

        Args:
            response: Bedrock response object, with or without the metering wrapper

        Returns:
            Extracted text content
        """
        response_obj = response.get("response", response)
        return response_obj['output']['message']['content'][0].get("text", "")

    def format_prompt(
        self,
        prompt_template: str,
        substitutions: Dict[str, str],
        required_placeholders: List[str] = None
    ) -> str:
        """
        Prepare prompt from template by replacing placeholders with values.

        Args:
            prompt_template: The prompt template with placeholders in {PLACEHOLDER} format
            substitutions: Dictionary of placeholder values
            required_placeholders: List of placeholder names that must be present in the template

        Returns:
            String with placeholders replaced by values

        Raises:
            ValueError: If a required placeholder is missing from the template
        """
        if required_placeholders:
            missing_placeholders = [p for p in required_placeholders if f"{{{p}}}" not in prompt_template]
            if missing_placeholders:
                raise ValueError(f"Prompt template must contain the following placeholders: {', '.join([f'{{{p}}}' for p in missing_placeholders])}")

        # Escape literal percent signs, then convert {PLACEHOLDER} to %(PLACEHOLDER)s
        prompt_template = prompt_template.replace("%", "%%")
        for key in substitutions:
            placeholder = f"{{{key}}}"
            if placeholder in prompt_template:
                prompt_template = prompt_template.replace(placeholder, f"%({key})s")

        return prompt_template % substitutions

    def _put_metric(self, metric_name: str, value: Union[int, float], unit: str = 'Count'):
        """
        Publish a metric if metrics are enabled.

        Args:
            metric_name: Name of the metric
            value: Metric value
            unit: Metric unit (default: Count)
        """
        if self.metrics_enabled:
            from formfill_common.metrics import put_metric
            put_metric(metric_name, value, unit)

    def _sanitize_messages_for_logging(self, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Create a copy of messages with binary content replaced for logging.

        Args:
            messages: List of message objects for Bedrock API

        Returns:
            Sanitized message objects suitable for logging
        """
        sanitized = copy.deepcopy(messages)

        for message in sanitized:
            if 'content' in message and isinstance(message['content'], list):
                for content_item in message['content']:
                    if isinstance(content_item, dict) and 'image' in content_item:
                        content_item['image'] = '[image_data]'
                    elif isinstance(content_item, dict) and 'bytes' in content_item:
                        content_item['bytes'] = '[binary_data]'

        return sanitized

    def _sanitize_response_for_logging(self, response: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a sanitized copy of the response suitable for logging.

        Args:
            response: Response from Bedrock API

        Returns:
            Sanitized response with long text truncated
        """
        sanitized = copy.deepcopy(response)

        message = sanitized.get('output', {}).get('message', {})
        content = message.get('content')
        if isinstance(content, list):
            for item in content:
                if isinstance(item, dict) and isinstance(item.get('text'), str) and len(item['text']) > 500:
                    item['text'] = item['text'][:500] + '... [truncated]'

        return sanitized
