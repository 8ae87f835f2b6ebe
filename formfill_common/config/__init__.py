# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import logging
import os
from copy import deepcopy
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are an expert at analyzing form documents and identifying form fields. Your task is to:

1. Identify form fields from extracted text elements
2. Classify each field with the most appropriate type
3. Generate clean, standardized field keys and labels
4. Determine if fields are likely required based on context
5. Provide confidence scores based on text clarity and context

Field Types:
- text: General text input (names, descriptions)
- number: Numeric values (SSN, amounts)
- email: Email addresses
- phone: Phone numbers
- date: Dates (birth dates, appointment dates, etc.)
- checkbox: Yes/no or selection fields
- radio: Multiple choice selections
- select: Dropdown selections
- signature: Signature fields
- address: Full address fields

Key Guidelines:
- Generate semantic snake_case keys (e.g., "patient_name", "date_of_birth")
- Create human-readable labels (e.g., "Patient Name", "Date of Birth")
- Mark fields as required if they appear essential (name, date, signature)
- Use nearby text context to improve classification accuracy
- Assign higher confidence to clear, unambiguous text

Respond with JSON only."""

DEFAULT_TASK_PROMPT = """Analyze the following text elements extracted from a form document and classify them as form fields:

{CANDIDATES}

Please classify each text element into appropriate form fields. Consider:
1. Context from nearby text to understand field purpose
2. Common form patterns (name, address, date, signature, etc.)
3. Position relationships between text elements
4. Whether text appears to be a label, field value, or instruction

Return a JSON object of the form:
{"fields": [{"id": "<candidate id>", "key": "<snake_case_key>", "label": "<Human Label>", "type": "<one of {FIELD_TYPES}>", "required": true|false, "confidence": 0.0-1.0, "suggestions": ["..."]}]}"""

DEFAULT_CONFIG: Dict[str, Any] = {
    "ocr": {
        "backend": "auto",  # auto | textract | tesseract
        "max_cloud_bytes": 10 * 1024 * 1024,
        "min_confidence": 0.30,
        "dpi": 144,
        "textract_features": ["FORMS", "TABLES"],
        "binarize": False,
        "tesseract_lang": "eng",
    },
    "grouping": {
        "same_line_tolerance": 0.01,
        "adjacent_gap": 0.03,
        "nearby_distance": 0.10,
        "line_break_threshold": 0.02,
    },
    "classification": {
        "backend": "bedrock",  # bedrock | heuristic
        "model": "us.anthropic.claude-3-5-haiku-20241022-v1:0",
        "temperature": 0.1,
        "top_k": 5,
        "max_tokens": 4096,
        "batch_size": 50,
        "min_confidence": 0.30,
        "system_prompt": DEFAULT_SYSTEM_PROMPT,
        "task_prompt": DEFAULT_TASK_PROMPT,
    },
    "autofill": {
        "fuzzy_threshold": 0.7,
        "date_format": "%m/%d/%Y",
        "household_weights": {
            "relationship": 0.8,
            "minor": 0.6,
            "spouse": 0.9,
            "threshold": 0.5,
        },
    },
    "render": {
        "default_font_size": 12,
        "padding": 2,
        "font": "helv",
        "check_scale": 0.6,
    },
}


def deep_merge(default: Dict[str, Any], custom: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two dictionaries, with custom values taking precedence

    Args:
        default: The default configuration dictionary
        custom: The custom configuration dictionary

    Returns:
        Merged configuration dictionary
    """
    result = deepcopy(default)

    for key, value in (custom or {}).items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def build_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return the default configuration with caller overrides merged on top."""
    return deep_merge(DEFAULT_CONFIG, overrides or {})


class ConfigurationReader:
    def __init__(self, table_name=None):
        """
        Initialize the configuration reader using the table name from environment variable or parameter

        Args:
            table_name: Optional override for configuration table name
        """
        table_name = table_name or os.environ.get('CONFIGURATION_TABLE_NAME')
        if not table_name:
            raise ValueError("Configuration table name not provided. Either set CONFIGURATION_TABLE_NAME environment variable or provide table_name parameter.")

        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized ConfigurationReader with table: {table_name}")

    def get_configuration(self, config_type: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a configuration item from DynamoDB

        Args:
            config_type: The configuration type to retrieve ('Default' or 'Custom')

        Returns:
            Configuration dictionary if found, None otherwise
        """
        try:
            response = self.table.get_item(
                Key={
                    'Configuration': config_type
                }
            )
            return response.get('Item')
        except ClientError as e:
            logger.error(f"Error retrieving configuration {config_type}: {str(e)}")
            raise

    def get_merged_configuration(self) -> Dict[str, Any]:
        """
        Layer the stored Default and Custom items over the built-in defaults

        Returns:
            Merged configuration dictionary
        """
        try:
            merged_config = deepcopy(DEFAULT_CONFIG)
            for config_type in ('Default', 'Custom'):
                item = self.get_configuration(config_type)
                if not item:
                    logger.info(f"No {config_type} configuration found")
                    continue
                item.pop('Configuration', None)
                merged_config = deep_merge(merged_config, item)

            logger.info("Successfully merged configurations")
            return merged_config

        except Exception as e:
            logger.error(f"Error getting merged configuration: {str(e)}")
            raise


def get_config(table_name=None) -> Dict[str, Any]:
    """
    Get the merged configuration from the configuration table

    Args:
        table_name: Optional override for configuration table name

    Returns:
        Merged configuration dictionary
    """
    reader = ConfigurationReader(table_name)
    return reader.get_merged_configuration()
