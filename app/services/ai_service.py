"""
Ignyt - AI Service
OpenAI Chat Completions integration for post copy generation
"""
import json
import time
import logging
from datetime import datetime
from typing import Dict, List, Any, Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = 'https://api.openai.com/v1/chat/completions'

PLATFORM_GUIDANCE = {
    'facebook': 'For Facebook, focus on engaging and shareable content.',
    'instagram': 'For Instagram, create visually descriptive and trendy content with relevant hashtags.',
    'google': 'For Google Business, focus on informative and locally relevant content.',
}

CONTENT_TYPE_GUIDANCE = {
    'evergreen': 'Create evergreen content that will remain relevant over time.',
    'promotional': 'Create promotional content that drives engagement and conversions.',
}


class AIServiceError(Exception):
    """Upstream generation failure"""
    pass


class AIService:
    """AI content generation service"""

    @property
    def openai_key(self):
        """Get OpenAI API key at runtime"""
        return current_app.config.get('OPENAI_API_KEY', '')

    @property
    def default_model(self):
        return current_app.config.get('DEFAULT_AI_MODEL', 'gpt-4o')

    @property
    def is_configured(self) -> bool:
        return bool(self.openai_key)

    def build_system_prompt(self, content_type: Optional[str] = None, platforms: List[str] = None,
                            category: Optional[str] = None) -> str:
        """System message tuned to the content type, target platforms and category"""
        parts = ['You are a skilled content creator for social media.']

        if content_type in CONTENT_TYPE_GUIDANCE:
            parts.append(CONTENT_TYPE_GUIDANCE[content_type])

        for platform in platforms or []:
            if platform in PLATFORM_GUIDANCE:
                parts.append(PLATFORM_GUIDANCE[platform])

        if category:
            parts.append(f'The content category is "{category}".')

        parts.append(
            "Provide a title and description for the post. "
            "Format your response as JSON with 'title' and 'description' keys."
        )
        return ' '.join(parts)

    def generate_post_content(self, prompt: str, category: Optional[str] = None,
                              platforms: List[str] = None, content_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Generate a post title and description

        Returns:
            {
                'title': str,
                'description': str,
                'prompt': str,
                'metadata': {'category', 'content_type', 'platforms', 'generated_with', 'model', 'timestamp'}
            }

        Raises:
            AIServiceError: when OpenAI cannot produce a usable answer
        """
        system_prompt = self.build_system_prompt(content_type, platforms, category)
        model = self.default_model

        logger.info(f"Generating post content: model={model}, content_type={content_type}")

        response = self._call_with_retry(prompt, system_prompt=system_prompt, model=model)
        if response.get('error'):
            raise AIServiceError(response['error'])

        try:
            generated = json.loads(response['content'] or '{}')
        except json.JSONDecodeError:
            logger.error(f"OpenAI returned non-JSON content: {response['content'][:200]}")
            raise AIServiceError('OpenAI returned malformed JSON')

        if not isinstance(generated, dict):
            raise AIServiceError('OpenAI returned malformed JSON')

        return {
            'title': generated.get('title') or 'Generated Title',
            'description': generated.get('description') or 'Generated Description',
            'prompt': prompt,
            'metadata': {
                'category': category,
                'content_type': content_type,
                'platforms': platforms or [],
                'generated_with': 'AI',
                'model': model,
                'timestamp': datetime.utcnow().isoformat()
            }
        }

    def _call_with_retry(self, prompt: str, max_tokens: int = 1000, max_retries: int = 3,
                         system_prompt: str = None, model: str = None) -> Dict[str, Any]:
        """Call OpenAI with retry logic for rate limits"""

        for attempt in range(max_retries):
            response = self._call_openai(prompt, max_tokens, system_prompt=system_prompt, model=model)

            if not response.get('error'):
                return response

            if response.get('status') == 429 and attempt < max_retries - 1:
                wait_time = (attempt + 1) * 2
                logger.warning(f"Rate limited, waiting {wait_time}s before retry {attempt + 1}/{max_retries}")
                time.sleep(wait_time)
                continue

            # Other error, don't retry
            return response

        return {'error': 'Max retries exceeded due to rate limits'}

    def _call_openai(self, prompt: str, max_tokens: int = 1000, system_prompt: str = None,
                     model: str = None) -> Dict[str, Any]:
        """Call OpenAI API in JSON mode"""
        if not self.openai_key:
            return {'error': 'OpenAI API key not configured'}

        try:
            response = requests.post(
                OPENAI_CHAT_URL,
                headers={
                    'Authorization': f'Bearer {self.openai_key}',
                    'Content-Type': 'application/json'
                },
                json={
                    'model': model or self.default_model,
                    'messages': [
                        {'role': 'system', 'content': system_prompt},
                        {'role': 'user', 'content': prompt}
                    ],
                    'max_tokens': max_tokens,
                    'response_format': {'type': 'json_object'}
                },
                timeout=60
            )

            if response.status_code == 429:
                return {'error': 'Rate limit exceeded (429). Please wait a minute and try again.', 'status': 429}

            if response.status_code != 200:
                error_text = response.text[:500]
                logger.error(f"OpenAI API error response: {error_text}")
                return {'error': f'OpenAI API error ({response.status_code})', 'status': response.status_code}

            data = response.json()

            if 'choices' not in data or len(data['choices']) == 0:
                logger.error(f"OpenAI API returned no choices: {data}")
                return {'error': 'OpenAI API returned empty response'}

            return {
                'content': data['choices'][0].get('message', {}).get('content', ''),
                'usage': data.get('usage', {})
            }

        except requests.exceptions.Timeout:
            logger.error("OpenAI API timeout")
            return {'error': 'Request to OpenAI timed out'}
        except (requests.RequestException, ValueError) as e:
            logger.error(f"OpenAI API request failed: {e}")
            return {'error': f'OpenAI request failed: {str(e)}'}


# Singleton instance
_ai_service = None


def get_ai_service() -> AIService:
    """Get or create AI service instance"""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service
