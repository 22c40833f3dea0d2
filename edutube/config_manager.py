"""
Configuration manager for EduTube Quiz Bot settings and parameters.
"""
import logging
import os
from typing import Optional, Dict, Any, List

from .models import QuizSettings


class ConfigManager:
    """Manages playback, scheduling and question provider configuration."""

    # Default configuration values
    DEFAULT_POLL_INTERVAL = 0.5
    DEFAULT_MATCH_WINDOW = 1.5
    DEFAULT_DURATION_MINUTES = 15
    DEFAULT_MODEL_NAME = "gemini-3-flash-preview"

    # Validation limits
    MIN_POLL_INTERVAL = 0.1
    MAX_POLL_INTERVAL = 5.0
    MIN_MATCH_WINDOW = 0.5
    MAX_MATCH_WINDOW = 10.0
    MIN_DURATION_MINUTES = 1
    MAX_DURATION_MINUTES = 600  # 10 hours

    # Checked in order; the first one set wins
    API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._api_key: Optional[str] = None

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get a copy of the current settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            poll_interval=self._global_settings.poll_interval,
            match_window=self._global_settings.match_window,
            duration_minutes=self._global_settings.duration_minutes,
            model_name=self._global_settings.model_name
        )

    def set_poll_interval(self, interval: float) -> Dict[str, Any]:
        """
        Set how often the playback position is sampled.

        Args:
            interval: Polling interval in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(interval, bool) or not isinstance(interval, (int, float)):
            error_msg = f"Poll interval must be a number, got {type(interval).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(interval).__name__}"
            }

        if interval < self.MIN_POLL_INTERVAL or interval > self.MAX_POLL_INTERVAL:
            error_msg = (f"Poll interval must be between {self.MIN_POLL_INTERVAL} "
                         f"and {self.MAX_POLL_INTERVAL} seconds")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        # A hit can only be missed if a whole window fits between two samples
        if interval >= self._global_settings.match_window:
            error_msg = (f"Poll interval ({interval}s) must be shorter than the "
                         f"match window ({self._global_settings.match_window}s)")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._global_settings.poll_interval = float(interval)
        self.logger.info(f"Poll interval set to {interval} seconds")
        return {
            'success': True,
            'message': f"Poll interval set to {interval} seconds",
            'user_message': f"✅ Playback position will be checked every {interval} seconds"
        }

    def get_poll_interval(self) -> float:
        """Get current polling interval in seconds."""
        return self._global_settings.poll_interval

    def set_match_window(self, window: float) -> Dict[str, Any]:
        """
        Set the tolerance window used to decide a question is due.

        Args:
            window: Half-width of the window in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(window, bool) or not isinstance(window, (int, float)):
            error_msg = f"Match window must be a number, got {type(window).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(window).__name__}"
            }

        if window < self.MIN_MATCH_WINDOW or window > self.MAX_MATCH_WINDOW:
            error_msg = (f"Match window must be between {self.MIN_MATCH_WINDOW} "
                         f"and {self.MAX_MATCH_WINDOW} seconds")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        if window <= self._global_settings.poll_interval:
            error_msg = (f"Match window ({window}s) must be longer than the "
                         f"poll interval ({self._global_settings.poll_interval}s)")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._global_settings.match_window = float(window)
        self.logger.info(f"Match window set to {window} seconds")
        return {
            'success': True,
            'message': f"Match window set to {window} seconds",
            'user_message': f"✅ Questions trigger within ±{window} seconds of their timestamp"
        }

    def get_match_window(self) -> float:
        """Get current match window in seconds."""
        return self._global_settings.match_window

    def set_duration_minutes(self, minutes: int) -> Dict[str, Any]:
        """
        Set the estimated video duration used to spread question timestamps.

        Args:
            minutes: Estimated duration in minutes

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(minutes, bool) or not isinstance(minutes, int):
            error_msg = f"Duration must be an integer, got {type(minutes).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(minutes).__name__}"
            }

        if minutes < self.MIN_DURATION_MINUTES:
            error_msg = f"Duration must be at least {self.MIN_DURATION_MINUTES} minute"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Video too short: Minimum is {self.MIN_DURATION_MINUTES} minute"
            }

        if minutes > self.MAX_DURATION_MINUTES:
            error_msg = f"Duration cannot exceed {self.MAX_DURATION_MINUTES} minutes"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Video too long: Maximum is {self.MAX_DURATION_MINUTES} minutes"
            }

        self._global_settings.duration_minutes = minutes
        self.logger.info(f"Estimated duration set to {minutes} minutes")
        return {
            'success': True,
            'message': f"Estimated duration set to {minutes} minutes",
            'user_message': f"✅ Questions will be spread over {minutes} minutes"
        }

    def get_duration_minutes(self) -> int:
        """Get current estimated duration in minutes."""
        return self._global_settings.duration_minutes

    def set_model_name(self, model_name: str) -> Dict[str, Any]:
        """
        Set the Gemini model used for question generation.

        Args:
            model_name: Model identifier, e.g. "gemini-2.5-flash"

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(model_name, str) or not model_name.strip():
            error_msg = "Model name must be a non-empty string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Model name cannot be empty"
            }

        self._global_settings.model_name = model_name.strip()
        self.logger.info(f"Model set to {self._global_settings.model_name}")
        return {
            'success': True,
            'message': f"Model set to {self._global_settings.model_name}",
            'user_message': f"✅ Questions will be generated with {self._global_settings.model_name}"
        }

    def get_model_name(self) -> str:
        """Get current model name."""
        return self._global_settings.model_name

    def set_api_key(self, api_key: Optional[str]) -> None:
        """Set the provider credential from the configuration file."""
        self._api_key = api_key.strip() if api_key and api_key.strip() else None

    def get_api_key(self) -> Optional[str]:
        """
        Get the question provider credential.

        Environment variables take precedence over the configured value.

        Returns:
            The API key, or None when no credential is configured
        """
        for env_var in self.API_KEY_ENV_VARS:
            value = os.getenv(env_var)
            if value and value.strip():
                return value.strip()
        return self._api_key

    def has_api_key(self) -> bool:
        """Check whether a provider credential is available."""
        return self.get_api_key() is not None

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(
            poll_interval=self.DEFAULT_POLL_INTERVAL,
            match_window=self.DEFAULT_MATCH_WINDOW,
            duration_minutes=self.DEFAULT_DURATION_MINUTES,
            model_name=self.DEFAULT_MODEL_NAME
        )
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._global_settings

        if not (self.MIN_POLL_INTERVAL <= settings.poll_interval <= self.MAX_POLL_INTERVAL):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid poll interval: {settings.poll_interval}"
            )

        if not (self.MIN_MATCH_WINDOW <= settings.match_window <= self.MAX_MATCH_WINDOW):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid match window: {settings.match_window}"
            )

        if settings.match_window <= settings.poll_interval:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid match window: {settings.match_window} is not longer than "
                f"poll interval {settings.poll_interval}"
            )

        if (not isinstance(settings.duration_minutes, int) or
            settings.duration_minutes < self.MIN_DURATION_MINUTES or
            settings.duration_minutes > self.MAX_DURATION_MINUTES):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid duration: {settings.duration_minutes}"
            )

        if not isinstance(settings.model_name, str) or not settings.model_name.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid model name: {settings.model_name!r}"
            )

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        credential_str = "configured" if self.has_api_key() else "missing"

        return (
            f"Quiz Settings:\n"
            f"• Estimated duration: {settings.duration_minutes} minutes\n"
            f"• Poll interval: {settings.poll_interval} seconds\n"
            f"• Match window: ±{settings.match_window} seconds\n"
            f"• Model: {settings.model_name}\n"
            f"• API key: {credential_str}"
        )

    def get_user_friendly_validation_errors(self) -> List[str]:
        """
        Get user-friendly validation error messages for current settings.

        Returns:
            List of user-friendly error messages
        """
        validation_result = self.validate_settings()
        user_friendly_errors = []

        for issue in validation_result.get("issues", []):
            if "poll interval" in issue.lower() and "match window" not in issue.lower():
                user_friendly_errors.append(
                    f"❌ Poll Interval Issue: {issue}. "
                    f"Please set a value between {self.MIN_POLL_INTERVAL} and {self.MAX_POLL_INTERVAL} seconds."
                )
            elif "match window" in issue.lower():
                user_friendly_errors.append(
                    f"❌ Match Window Issue: {issue}. "
                    "The window must be longer than the poll interval."
                )
            elif "duration" in issue.lower():
                user_friendly_errors.append(
                    f"❌ Duration Issue: {issue}. "
                    f"Please set a value between {self.MIN_DURATION_MINUTES} and {self.MAX_DURATION_MINUTES} minutes."
                )
            elif "model" in issue.lower():
                user_friendly_errors.append(
                    f"❌ Model Issue: {issue}. Please configure a Gemini model name."
                )
            else:
                user_friendly_errors.append(f"❌ Configuration Issue: {issue}")

        return user_friendly_errors

    def get_configuration_health_check(self) -> Dict[str, Any]:
        """
        Perform a health check of the configuration.

        Returns:
            Dictionary with health status and recommendations
        """
        health_check = {
            'healthy': True,
            'warnings': [],
            'errors': [],
            'recommendations': []
        }

        validation_result = self.validate_settings()
        if not validation_result['valid']:
            health_check['healthy'] = False
            health_check['errors'].extend(self.get_user_friendly_validation_errors())

        if not self.has_api_key():
            health_check['healthy'] = False
            health_check['errors'].append("❌ API key is missing: quizzes cannot be generated")
            health_check['recommendations'].append(
                f"Set one of {', '.join(self.API_KEY_ENV_VARS)} or provider.api_key in config.json."
            )

        # Two questions closer than this would both be due at once
        min_spacing = 2 * self._global_settings.match_window
        spread_seconds = self._global_settings.duration_minutes * 60 * 0.2
        if spread_seconds < min_spacing:
            health_check['warnings'].append(
                f"⚠️ Estimated duration ({self._global_settings.duration_minutes} min) leaves "
                f"less than {min_spacing:.1f}s between questions"
            )
            health_check['recommendations'].append(
                "Questions will be re-spaced; consider a longer estimated duration."
            )

        return health_check
