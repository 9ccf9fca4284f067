"""Tests for OpenAI tool definitions built from the registry."""

from tool_agent.config import ToolConfig
from tool_agent.orchestration.tool_defs import build_tool_definition, build_tool_definitions
from tool_agent.tools import build_default_registry


def by_name(tools: list[dict]) -> dict:
    return {t["function"]["name"]: t["function"] for t in tools}


class TestBuildToolDefinitions:
    """Tests for build_tool_definitions."""

    def test_includes_registry_tools(self):
        """Every registered tool is disclosed, in registry order."""
        registry = build_default_registry(ToolConfig())
        tools = build_tool_definitions(registry)
        assert [t["function"]["name"] for t in tools] == registry.names()

    def test_openai_format(self):
        """Each tool should follow OpenAI function-calling format."""
        for tool in build_tool_definitions(build_default_registry(ToolConfig())):
            assert tool["type"] == "function"
            func = tool["function"]
            assert func["description"]
            params = func["parameters"]
            assert params["type"] == "object"
            assert "properties" in params

    def test_exclude_tools(self):
        """Excluded tools should not appear in the output."""
        tools = build_tool_definitions(
            build_default_registry(ToolConfig()), exclude_tools={"calculate"}
        )
        names = [t["function"]["name"] for t in tools]
        assert "calculate" not in names
        assert "web_search" in names

    def test_titles_stripped(self):
        """Pydantic titles are removed at every level."""
        funcs = by_name(build_tool_definitions(build_default_registry(ToolConfig())))
        params = funcs["openWeatherMap"]["parameters"]
        assert "title" not in params
        assert all("title" not in prop for prop in params["properties"].values())

    def test_property_named_title_kept(self):
        """Only schema titles are dropped, not properties called "title"."""
        from pydantic import Field

        from tool_agent.tools import ToolInput, ToolSpec

        class NoteInput(ToolInput):
            title: str = Field(description="Note title")

        async def note(args: NoteInput) -> str:
            return args.title

        definition = build_tool_definition(ToolSpec("note", "Save a note.", NoteInput, note))
        assert "title" in definition["function"]["parameters"]["properties"]

    def test_aliases_used_for_parameter_names(self):
        """Wire names such as coinIds and min/max are what the model sees."""
        funcs = by_name(build_tool_definitions(build_default_registry(ToolConfig())))
        price = funcs["coinGeckoPrice"]["parameters"]
        assert "coinIds" in price["properties"]
        assert price["required"] == ["coinIds"]
        assert set(funcs["randomNumberTool"]["parameters"]["properties"]) == {"min", "max"}

    def test_arguments_free_tool(self):
        """Tools without arguments still declare an object schema."""
        funcs = by_name(build_tool_definitions(build_default_registry(ToolConfig())))
        assert funcs["currentTime"]["parameters"]["properties"] == {}
