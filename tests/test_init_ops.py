import pytest

from ashcode.config import ToolsConfig
from ashcode.errors import ToolError
from ashcode.tools import ToolRegistry
from ashcode.tools.init_ops import (InitArgs, ProjectFile, build_agents_md, detect_language,
                                    detect_project_type, detect_technologies,
                                    generate_agents_md, identify_key_components, init_project,
                                    parse_custom_sections, render_tree, scan_project)


@pytest.fixture
def python_project(tmp_path):
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'demo'\n")
    (tmp_path / "Dockerfile").write_text("FROM python\n")
    (tmp_path / ".gitignore").write_text("*.pyc\n")
    (tmp_path / "debug.log").write_text("noise")
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "__init__.py").write_text("")
    (tmp_path / "app" / "main.py").write_text("print('hi')\n")
    (tmp_path / "tests").mkdir()
    (tmp_path / "tests" / "test_app.py").write_text("")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.js").write_text("")
    (tmp_path / ".venv").mkdir()
    (tmp_path / ".venv" / "site.py").write_text("")
    return tmp_path


def _files(*specs):
    return [ProjectFile(path, path.endswith("/") or "." not in path.rsplit("/", 1)[-1],
                        language=detect_language(path))
            for path in specs]


class TestScan:
    def test_ignored_and_hidden_entries_are_skipped(self, python_project):
        paths = [f.path for f in scan_project(python_project)]

        assert paths == [".gitignore", "Dockerfile", "app", "app/__init__.py", "app/main.py",
                         "pyproject.toml", "tests", "tests/test_app.py"]

    def test_languages_detected_by_extension(self):
        assert detect_language("main.py") == "Python"
        assert detect_language("App.TSX") == "TypeScript"
        assert detect_language("Dockerfile") == "Docker"
        assert detect_language("Makefile") == "Make"
        assert detect_language("notes.txt") == ""


class TestProjectType:
    def test_marker_file_sets_type(self, python_project):
        assert detect_project_type(scan_project(python_project)) == ("Python Project", "Python")

    def test_typescript_node_project(self):
        files = _files("package.json", "src", "src/a.ts", "src/b.ts", "src/c.js")

        assert detect_project_type(files) == ("Node.js/JavaScript Project", "TypeScript")

    def test_general_project_uses_most_common_language(self):
        files = _files("a.go", "b.go", "run.sh")

        assert detect_project_type(files) == ("General Project", "Go")

    def test_nested_marker_is_not_a_root_marker(self):
        files = _files("sub", "sub/go.mod", "x.rb")

        assert detect_project_type(files) == ("General Project", "Ruby")

    def test_empty_project(self):
        assert detect_project_type([]) == ("General Project", "Unknown")


class TestSections:
    def test_key_components_in_fixed_order(self, python_project):
        components = identify_key_components(scan_project(python_project))

        assert list(components) == ["Entry Points", "Testing", "Configuration", "Deployment"]
        assert components["Entry Points"] == [("app/main.py", "Main entry point")]
        assert components["Testing"] == [("tests", "Test files")]

    def test_technologies(self, python_project):
        assert detect_technologies(scan_project(python_project)) == ["Docker", "Python packaging"]

    def test_tree(self, python_project):
        assert render_tree(scan_project(python_project)) == "\n".join([
            "├── .gitignore",
            "├── Dockerfile",
            "├── app/",
            "│   ├── __init__.py",
            "│   └── main.py",
            "├── pyproject.toml",
            "└── tests/",
            "    └── test_app.py",
        ])

    def test_tree_cuts_deep_nesting(self):
        files = [ProjectFile("a", True), ProjectFile("a/b", True), ProjectFile("a/b/c.txt", False)]

        assert render_tree(files, max_depth=2) == "└── a/\n    └── b/\n        └── ..."

    def test_custom_sections_need_matching_close_tag(self):
        text = ("<!-- CUSTOM:description -->\n  Widgets.\n<!-- /CUSTOM:description -->\n"
                "<!-- CUSTOM:broken -->x<!-- /CUSTOM:other -->")

        assert parse_custom_sections(text) == {"description": "Widgets."}


class TestGenerate:
    def test_fresh_file_has_defaults(self, python_project):
        content = generate_agents_md(python_project)

        assert (python_project / "AGENTS.md").read_text() == content
        assert content.startswith("# AGENTS.md\n\n## Project Overview\n\n"
                                  f"**Project:** {python_project.name}\n"
                                  "**Type:** Python Project\n"
                                  "**Primary Language:** Python\n")
        assert "### Description" not in content
        assert "- Follow standard Python conventions" in content
        assert "1. **Read First**" in content
        assert "- `pyproject.toml`: Project configuration" in content
        assert content.endswith("Custom sections are preserved during updates.*\n")

    def test_custom_sections_survive_regeneration(self, python_project):
        (python_project / "AGENTS.md").write_text(
            "# old\n"
            "<!-- CUSTOM:description -->\nA CLI for widgets.\n<!-- /CUSTOM:description -->\n"
            "<!-- CUSTOM:instructions -->\nAlways run make lint.\n<!-- /CUSTOM:instructions -->\n"
            "<!-- CUSTOM:team -->\nOwned by platform.\n<!-- /CUSTOM:team -->\n")

        first = generate_agents_md(python_project)
        second = generate_agents_md(python_project)

        assert "### Description\n\n<!-- CUSTOM:description -->\nA CLI for widgets.\n" in first
        assert "Always run make lint." in first
        assert "1. **Read First**" not in first
        assert "## Additional Notes" in first
        assert parse_custom_sections(second) == {
            "description": "A CLI for widgets.",
            "instructions": "Always run make lint.",
            "team": "Owned by platform.",
        }

    def test_no_technologies(self):
        content = build_agents_md("demo", _files("a.txt"))

        assert "## Technologies\n\n- None detected\n" in content

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(ToolError) as exc:
            generate_agents_md(tmp_path / "missing")

        assert exc.value.message.startswith("Error generating AGENTS.md: not a directory")


class TestInitTool:
    def test_writes_into_working_dir(self, python_project):
        config = ToolsConfig(working_dir=str(python_project))

        result = init_project(InitArgs(), config)

        assert result.ok
        assert result.output.startswith("Successfully generated AGENTS.md\n\n# AGENTS.md\n")
        assert (python_project / "AGENTS.md").exists()

    def test_relative_path_argument(self, tmp_path):
        (tmp_path / "svc").mkdir()
        (tmp_path / "svc" / "main.go").write_text("package main\n")

        init_project(InitArgs(path="svc"), ToolsConfig(working_dir=str(tmp_path)))

        assert "**Primary Language:** Go" in (tmp_path / "svc" / "AGENTS.md").read_text()
        assert not (tmp_path / "AGENTS.md").exists()

    def test_output_truncated(self, tmp_path):
        result = init_project(InitArgs(), ToolsConfig(working_dir=str(tmp_path), max_output_size=20))

        assert result.output.endswith("[Output truncated at 20 bytes]")

    def test_through_registry(self, tools_config, tmp_path):
        registry = ToolRegistry(tools_config)

        assert registry.execute("init", "{}").ok
        assert (tmp_path / "AGENTS.md").exists()

        failed = registry.execute("init", '{"path": "nope"}')
        assert failed.output.startswith("Error generating AGENTS.md: not a directory")
        assert failed.error.startswith("init error:")
