"""
LLM client for Ollama integration
"""

import json
import time
import logging
import requests
from typing import Dict, Any, Optional

from ..core.exceptions import ConnectionError, BridgeError, BridgeTimeout

logger = logging.getLogger(__name__)


class LLMClient:
    """
    Client for interacting with Ollama LLM services
    """

    def __init__(self, llm_config: Dict[str, Any]):
        self.config = llm_config
        self.base_url = llm_config['base_url']
        self.default_model = llm_config['default_model']
        self.request_timeout = llm_config.get('request_timeout', 30)

    def test_connection(self) -> bool:
        """Test connection to Ollama service"""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            if response.status_code == 200:
                models = [model['name'] for model in response.json().get('models', [])]
                logger.info(f"Ollama connected. Available models: {len(models)}")
                if self.default_model not in models:
                    logger.warning(f"Missing model: {self.default_model}")
                return True
            logger.error(f"Ollama service returned HTTP {response.status_code}")
            return False
        except requests.RequestException as e:
            logger.error(f"Ollama connection test failed: {e}")
            return False

    def call_ollama_json(self, prompt: str, model: Optional[str] = None,
                         timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Call Ollama with JSON format enforcement.

        Returns an empty dict when the model output is not valid JSON.

        Raises:
            BridgeTimeout: The request exceeded `timeout`
            ConnectionError: The service could not be reached
        """
        model = model or self.default_model
        start_time = time.time()

        payload = {
            "model": model,
            "prompt": prompt,
            "format": "json",
            "stream": False,
            "options": {
                "temperature": 0.0,
                "top_p": 0.9
            }
        }

        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=timeout or self.request_timeout
            )
            response.raise_for_status()
            result = response.json()
        except requests.Timeout as e:
            logger.warning(f"LLM call to {model} timed out after {time.time() - start_time:.2f}s")
            raise BridgeTimeout(f"Ollama request timed out: {e}")
        except ValueError as e:
            # requests' JSONDecodeError is also a RequestException
            raise BridgeError(f"Ollama returned a non-JSON body: {e}")
        except requests.RequestException as e:
            raise ConnectionError(f"Ollama request failed: {e}")

        logger.info(f"LLM call to {model} completed: {time.time() - start_time:.2f}s")

        response_text = result.get('response', '{}')
        try:
            return json.loads(response_text)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON response: {e}")
            logger.debug(f"Raw response: {response_text}")
            return {}
