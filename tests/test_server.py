import pytest
from mcp.server.fastmcp.exceptions import ResourceError, ToolError

import server
from tools import prompts, router

SAILPOINT_ENV = (
    "SAILPOINT_BASE_URL",
    "SAILPOINT_TENANT",
    "SAILPOINT_CLIENT_ID",
    "SAILPOINT_CLIENT_SECRET",
    "SAILPOINT_TIMEOUT",
    "SAILPOINT_MAX_RETRIES",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in SAILPOINT_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestRegistration:
    async def test_every_routed_tool_is_registered(self):
        names = {tool.name for tool in await server.mcp.list_tools()}
        assert names == set(router.TOOLS)

    async def test_prompts_are_registered(self):
        names = {prompt.name for prompt in await server.mcp.list_prompts()}
        assert names == set(prompts.PROMPTS)

    async def test_prompt_renders_template(self):
        result = await server.mcp.get_prompt("analyze_identity", {"identity_id": "id-1"})
        assert result.messages[0].content.text == prompts.render_prompt("analyze_identity", {"identity_id": "id-1"})

    async def test_identity_template_is_registered(self):
        templates = await server.mcp.list_resource_templates()
        assert [t.uriTemplate for t in templates] == ["sailpoint://identity/{identity_id}"]

    async def test_resource_listing_includes_identities(self, sailpoint, tenant):
        tenant.add("POST", "/v2025/search", (200, [{"id": "id-1", "name": "jdoe"}]))

        listed = await server.mcp.list_resources()

        assert [str(r.uri) for r in listed] == ["sailpoint://identity/id-1"]


class TestResourceRead:
    async def test_identity_uri_is_served_through_template(self, sailpoint, tenant):
        tenant.add("GET", "/v2025/identities/id-1", (200, {"id": "id-1", "name": "jdoe"}))
        tenant.add("GET", "/beta/historical-identities/id-1/access-items", (200, []))

        contents = list(await server.mcp.read_resource("sailpoint://identity/id-1"))

        assert contents[0].content.startswith("# Identity: jdoe")
        assert contents[0].mime_type == "text/markdown"

    async def test_unmatched_uri_is_unknown_resource(self):
        with pytest.raises((ResourceError, ValueError), match="Unknown resource"):
            await server.mcp.read_resource("sailpoint://role/r-1")


class TestToolWrapper:
    async def test_success_returns_text(self, sailpoint, tenant):
        tenant.add("GET", "/v2025/roles", (200, []))
        assert await server._run("search_roles", {"query": None}) == "[]"

    async def test_error_raises_tool_error(self):
        with pytest.raises(ToolError, match="Unknown tool: nope"):
            await server._run("nope", {})


class TestStartup:
    def test_validate_environment_variables(self, clean_env):
        clean_env.setenv("SAILPOINT_TENANT", "acme")
        clean_env.setenv("SAILPOINT_CLIENT_ID", "client-id-1234")
        clean_env.setenv("SAILPOINT_CLIENT_SECRET", "client-secret-5678")

        config = server.validate_environment_variables()

        assert config.base_url == "https://acme.api.identitynow.com"

    def test_missing_environment_exits(self, clean_env, capsys):
        with pytest.raises(SystemExit) as exc:
            server.validate_environment_variables()
        assert exc.value.code == 1
        assert "SAILPOINT_BASE_URL" in capsys.readouterr().err

    def test_bad_numeric_setting_exits(self, clean_env, capsys):
        clean_env.setenv("SAILPOINT_TENANT", "acme")
        clean_env.setenv("SAILPOINT_CLIENT_ID", "client-id-1234")
        clean_env.setenv("SAILPOINT_CLIENT_SECRET", "client-secret-5678")
        clean_env.setenv("SAILPOINT_TIMEOUT", "soon")

        with pytest.raises(SystemExit) as exc:
            server.validate_environment_variables()
        assert exc.value.code == 1
        assert "SAILPOINT_TIMEOUT" in capsys.readouterr().err

    def test_main_exits_before_serving_without_config(self, clean_env):
        with pytest.raises(SystemExit) as exc:
            server.main([])
        assert exc.value.code == 1
