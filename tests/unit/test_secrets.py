"""Tests for Kubernetes secrets utilities."""

from __future__ import annotations

import base64
from unittest.mock import Mock

import pytest
from kubernetes import client

from atlas_operator.exceptions import SecretNotFoundError
from atlas_operator.utils.secrets import read_secret_data


class TestReadSecretData:
    """Test cases for read_secret_data function."""

    def test_read_secret_data_success(self):
        """Test successfully reading all secret data."""
        mock_api = Mock()
        mock_secret = Mock()
        mock_secret.data = {
            "orgId": base64.b64encode(b"org-1").decode("utf-8"),
            "publicApiKey": base64.b64encode(b"pub").decode("utf-8"),
        }
        mock_api.read_namespaced_secret.return_value = mock_secret

        result = read_secret_data(mock_api, "default", "atlas-key")

        assert result == {"orgId": "org-1", "publicApiKey": "pub"}
        mock_api.read_namespaced_secret.assert_called_once_with(name="atlas-key", namespace="default")

    def test_read_secret_data_bytes_values(self):
        """Test reading secret data with bytes values."""
        mock_api = Mock()
        mock_secret = Mock()
        mock_secret.data = {"key1": b"value1"}
        mock_api.read_namespaced_secret.return_value = mock_secret

        assert read_secret_data(mock_api, "default", "atlas-key") == {"key1": "value1"}

    def test_read_secret_data_plain_string(self):
        """Test a value that is not base64 is returned as-is."""
        mock_api = Mock()
        mock_secret = Mock()
        mock_secret.data = {"key1": "plain-value!@#"}
        mock_api.read_namespaced_secret.return_value = mock_secret

        assert read_secret_data(mock_api, "default", "atlas-key") == {"key1": "plain-value!@#"}

    def test_read_secret_data_empty(self):
        """Test reading empty secret data."""
        mock_api = Mock()
        mock_secret = Mock()
        mock_secret.data = None
        mock_api.read_namespaced_secret.return_value = mock_secret

        assert read_secret_data(mock_api, "default", "atlas-key") == {}

    def test_read_secret_data_not_found(self):
        """Test error when secret not found."""
        mock_api = Mock()
        mock_api.read_namespaced_secret.side_effect = client.exceptions.ApiException(status=404)

        with pytest.raises(SecretNotFoundError):
            read_secret_data(mock_api, "default", "atlas-key")

    def test_read_secret_data_api_error(self):
        """Test other API errors propagate."""
        mock_api = Mock()
        mock_api.read_namespaced_secret.side_effect = client.exceptions.ApiException(status=500)

        with pytest.raises(client.exceptions.ApiException):
            read_secret_data(mock_api, "default", "atlas-key")
