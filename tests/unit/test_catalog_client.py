"""Tests for infra_deploy.catalog.client."""

import json
import ssl
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from infra_deploy.catalog.client import CatalogClient, load_catalog_file
from infra_deploy.config.settings import ServerConfig
from infra_deploy.exceptions import CompilationFailureError, ExternalServiceError, MalformedCatalogError


def make_client(handler) -> CatalogClient:
    return CatalogClient("https://puppet:8140/", transport=httpx.MockTransport(handler))


class TestCatalogClient:
    @pytest.mark.asyncio
    async def test_fetch_requests_environment_endpoint(self, lamp_document):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=lamp_document)

        async with make_client(handler) as client:
            catalog = await client.fetch("staging")

        assert requests[0].url == "https://puppet:8140/puppet/v3/environment/staging"
        assert requests[0].headers["Accept"] == "application/json"
        assert catalog.environment == "staging"
        assert "Lamp[prod]" in catalog.applications

    @pytest.mark.asyncio
    async def test_empty_applications(self):
        async with make_client(lambda request: httpx.Response(200, json={"applications": {}})) as client:
            catalog = await client.fetch()

        assert catalog.is_empty
        assert catalog.environment == "production"

    @pytest.mark.asyncio
    async def test_error_payload_is_compilation_failure(self):
        body = {"message": "Evaluation Error: Unknown resource type 'Lamp'", "issue_kind": "RUNTIME_ERROR"}

        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(CompilationFailureError) as exc_info:
                await client.fetch("production")

        assert exc_info.value.message == "Evaluation Error: Unknown resource type 'Lamp'"

    @pytest.mark.asyncio
    async def test_http_error_is_external_service_error(self):
        body = {"message": "Not Found: Could not find environment 'nope'"}

        async with make_client(lambda request: httpx.Response(404, json=body)) as client:
            with pytest.raises(ExternalServiceError) as exc_info:
                await client.fetch("nope")

        assert exc_info.value.status_code == 404
        assert "Could not find environment" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_compile_error_status_is_compilation_failure(self):
        body = {"message": "Evaluation Error: Unknown resource type Sql", "issue_kind": "RUNTIME_ERROR"}

        async with make_client(lambda request: httpx.Response(500, json=body)) as client:
            with pytest.raises(CompilationFailureError) as exc_info:
                await client.fetch("staging")

        assert exc_info.value.message == "Evaluation Error: Unknown resource type Sql"
        assert exc_info.value.environment == "staging"

    @pytest.mark.asyncio
    async def test_refused_request_is_external_service_error(self):
        body = {"message": "Forbidden request: /puppet/v3/environment/production (method GET)"}

        async with make_client(lambda request: httpx.Response(403, json=body)) as client:
            with pytest.raises(ExternalServiceError) as exc_info:
                await client.fetch()

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_error_status_without_message_is_external_service_error(self):
        async with make_client(lambda request: httpx.Response(502, text="Bad Gateway")) as client:
            with pytest.raises(ExternalServiceError) as exc_info:
                await client.fetch()

        assert exc_info.value.status_code == 502
        assert exc_info.value.response_text == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self):
        async with make_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(MalformedCatalogError):
                await client.fetch()

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried_then_raised(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("connection refused", request=request)

        with patch("infra_deploy.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with make_client(handler) as client:
                with pytest.raises(ExternalServiceError) as exc_info:
                    await client.fetch()

        assert calls == 3
        assert sleep.await_count == 2
        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transient_error_recovers(self, lamp_document):
        responses = iter([httpx.ConnectError("reset"), httpx.Response(200, json=lamp_document)])

        def handler(request: httpx.Request) -> httpx.Response:
            item = next(responses)
            if isinstance(item, Exception):
                raise item
            return item

        with patch("infra_deploy.utils.retry.asyncio.sleep", new_callable=AsyncMock):
            async with make_client(handler) as client:
                catalog = await client.fetch()

        assert len(catalog.node_relations()) == 3

    def test_from_config(self):
        client = CatalogClient.from_config(ServerConfig(host="compile01", port=8141, timeout=10.0))

        assert client.base_url == "https://compile01:8141"
        assert client.timeout == 10.0
        assert client.verify is True

    def test_from_config_with_ca_cert(self):
        with patch("infra_deploy.catalog.client.ssl.create_default_context") as create_context:
            client = CatalogClient.from_config(ServerConfig(ca_cert="/etc/puppetlabs/puppet/ssl/certs/ca.pem"))

        create_context.assert_called_once_with(cafile="/etc/puppetlabs/puppet/ssl/certs/ca.pem")
        create_context.return_value.load_cert_chain.assert_not_called()
        assert client.verify is create_context.return_value

    def test_from_config_presents_client_certificate(self):
        config = ServerConfig(
            ca_cert="/ssl/certs/ca.pem",
            client_cert="/ssl/certs/deployer.pem",
            client_key="/ssl/private_keys/deployer.pem",
        )

        with patch("infra_deploy.catalog.client.ssl.create_default_context") as create_context:
            client = CatalogClient.from_config(config)

        create_context.return_value.load_cert_chain.assert_called_once_with(
            "/ssl/certs/deployer.pem", keyfile="/ssl/private_keys/deployer.pem"
        )
        assert client.verify is create_context.return_value

    def test_from_config_client_certificate_without_verification(self):
        config = ServerConfig(verify_ssl=False, client_cert="/ssl/certs/deployer.pem")

        with patch("infra_deploy.catalog.client.ssl.create_default_context") as create_context:
            client = CatalogClient.from_config(config)

        create_context.assert_called_once_with(cafile=None)
        context = create_context.return_value
        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_NONE
        context.load_cert_chain.assert_called_once_with("/ssl/certs/deployer.pem", keyfile=None)
        assert client.verify is context

    def test_from_config_without_verification(self):
        assert CatalogClient.from_config(ServerConfig(verify_ssl=False)).verify is False


class TestLoadCatalogFile:
    def test_loads_document(self, catalog_file):
        catalog = load_catalog_file(catalog_file, environment="staging")

        assert catalog.environment == "staging"
        assert len(catalog.components) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(MalformedCatalogError):
            load_catalog_file(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(MalformedCatalogError):
            load_catalog_file(path)

    def test_error_payload(self, tmp_path):
        path = tmp_path / "error.json"
        path.write_text(json.dumps({"message": "compile failed"}))

        with pytest.raises(CompilationFailureError):
            load_catalog_file(path)
