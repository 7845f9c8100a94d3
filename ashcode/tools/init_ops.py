"""Project scan and AGENTS.md generation."""

import fnmatch
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

from ..config import ToolsConfig
from ..errors import ToolError
from ..logger import get_logger
from .base import ToolResult, truncate_output
from .file_ops import _resolve

_log = get_logger(__name__)

AGENTS_FILE = "AGENTS.md"

IGNORE_PATTERNS = (
    ".git", "node_modules", "vendor", ".vscode", ".idea",
    "dist", "build", "target", "__pycache__", ".pytest_cache",
    "*.pyc", "*.pyo", "*.log", "*.tmp", ".DS_Store",
)
VISIBLE_DOTFILES = (".gitignore", ".env.example")
MAX_TREE_DEPTH = 4

LANGUAGES = {
    ".go": "Go", ".py": "Python", ".js": "JavaScript", ".jsx": "JavaScript",
    ".ts": "TypeScript", ".tsx": "TypeScript", ".java": "Java", ".c": "C",
    ".cpp": "C++", ".cc": "C++", ".cxx": "C++", ".rs": "Rust", ".rb": "Ruby",
    ".php": "PHP", ".swift": "Swift", ".kt": "Kotlin", ".kts": "Kotlin", ".cs": "C#",
    ".sh": "Shell", ".bash": "Shell", ".yaml": "YAML", ".yml": "YAML", ".json": "JSON",
    ".xml": "XML", ".md": "Markdown", ".html": "HTML", ".htm": "HTML", ".css": "CSS",
    ".scss": "SCSS", ".sass": "SCSS", ".sql": "SQL", ".dockerfile": "Docker",
}

# (marker files at the root, project type, primary language)
PROJECT_MARKERS = (
    (("go.mod",), "Go Application", "Go"),
    (("package.json",), "Node.js/JavaScript Project", "JavaScript"),
    (("pyproject.toml", "setup.py"), "Python Project", "Python"),
    (("Cargo.toml",), "Rust Project", "Rust"),
    (("pom.xml",), "Java/Maven Project", "Java"),
    (("Gemfile",), "Ruby Project", "Ruby"),
)

KEY_DIRS = {
    "cmd": ("Entry Points", "Command-line applications"),
    "internal": ("Core Logic", "Internal packages"),
    "pkg": ("Public Libraries", "Public packages"),
    "src": ("Source Code", "Main source directory"),
    "test": ("Testing", "Test files"),
    "tests": ("Testing", "Test files"),
    "docs": ("Documentation", "Project documentation"),
}
KEY_FILES = {
    "main.go": ("Entry Points", "Main entry point"),
    "main.py": ("Entry Points", "Main entry point"),
    "__main__.py": ("Entry Points", "Main entry point"),
    "index.js": ("Entry Points", "Main entry point"),
    "index.ts": ("Entry Points", "Main entry point"),
    "main.rs": ("Entry Points", "Main entry point"),
    "go.mod": ("Configuration", "Project configuration"),
    "package.json": ("Configuration", "Project configuration"),
    "Cargo.toml": ("Configuration", "Project configuration"),
    "pyproject.toml": ("Configuration", "Project configuration"),
    "Makefile": ("Build", "Build configuration"),
    "Dockerfile": ("Deployment", "Container configuration"),
    "README.md": ("Documentation", "Project documentation"),
}
CI_FILES = (".github/workflows/ci.yml", ".gitlab-ci.yml")
COMPONENT_ORDER = ("Entry Points", "Core Logic", "Public Libraries", "Source Code", "Testing",
                   "Configuration", "Build", "Deployment", "CI/CD", "Documentation")

TECHNOLOGY_SUFFIXES = (
    ("docker-compose.yml", "Docker Compose"),
    ("Dockerfile", "Docker"),
    (".github/workflows", "GitHub Actions"),
    ("Makefile", "Make"),
    ("go.mod", "Go Modules"),
    ("package.json", "npm/yarn"),
    ("pyproject.toml", "Python packaging"),
    (".proto", "Protocol Buffers"),
    (".graphql", "GraphQL"),
)

CUSTOM_SECTION_RE = re.compile(r"<!-- CUSTOM:(\w+) -->(.*?)<!-- /CUSTOM:\1 -->", re.DOTALL)

DEFAULT_GUIDELINES = """### Code Style

- Follow standard {language} conventions
- Maintain consistent formatting
- Write clear, self-documenting code

### Testing

- Write tests for new features
- Ensure all tests pass before committing

### Documentation

- Update documentation for API changes
- Include comments for complex logic"""

DEFAULT_INSTRUCTIONS = """When working on this project:

1. **Read First**: Review relevant code before making changes
2. **Test Changes**: Run tests after modifications
3. **Follow Patterns**: Maintain consistency with existing code style
4. **Document**: Update documentation and comments as needed
5. **Validate**: Ensure changes don't break existing functionality"""

FOOTER = "*This file was auto-generated by ashcode. Custom sections are preserved during updates.*"


@dataclass
class InitArgs:
    path: str = field(default=".", metadata={
        "description": "Project root to scan; AGENTS.md is written there"})


@dataclass
class ProjectFile:
    path: str
    is_dir: bool
    size: int = 0
    language: str = ""


def detect_language(name: str) -> str:
    language = LANGUAGES.get(os.path.splitext(name)[1].lower())
    if language:
        return language
    if name.endswith("Dockerfile"):
        return "Docker"
    if name.endswith("Makefile"):
        return "Make"
    return ""


def _ignored(name: str) -> bool:
    if any(fnmatch.fnmatch(name, pattern) for pattern in IGNORE_PATTERNS):
        return True
    return name.startswith(".") and not name.startswith(".git") and name not in VISIBLE_DOTFILES


def scan_project(root: Path) -> List[ProjectFile]:
    """Walk ``root`` and return every kept file and directory, sorted by relative path."""
    found: List[ProjectFile] = []
    for current, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if not _ignored(d))
        rel_dir = Path(current).relative_to(root)
        for d in dirs:
            found.append(ProjectFile((rel_dir / d).as_posix(), True))
        for name in files:
            if _ignored(name):
                continue
            try:
                size = os.path.getsize(os.path.join(current, name))
            except OSError:
                continue
            found.append(ProjectFile((rel_dir / name).as_posix(), False, size, detect_language(name)))
    found.sort(key=lambda f: f.path)
    return found


def detect_project_type(files: List[ProjectFile]) -> Tuple[str, str]:
    """Return ``(project type, primary language)``; root marker files win over file counts."""
    counts = Counter(f.language for f in files if f.language and not f.is_dir)
    root_names = {f.path for f in files if "/" not in f.path}
    for markers, project_type, language in PROJECT_MARKERS:
        if root_names.intersection(markers):
            if project_type.startswith("Node.js") and counts["TypeScript"] > counts["JavaScript"]:
                language = "TypeScript"
            return project_type, language
    common = counts.most_common(1)
    return "General Project", common[0][0] if common else "Unknown"


def identify_key_components(files: List[ProjectFile]) -> Dict[str, List[Tuple[str, str]]]:
    components: Dict[str, List[Tuple[str, str]]] = {}
    for f in files:
        name = f.path.rsplit("/", 1)[-1]
        if f.is_dir:
            match = KEY_DIRS.get(name)
        elif f.path in CI_FILES:
            match = ("CI/CD", "Continuous integration")
        else:
            match = KEY_FILES.get(name)
        if match:
            category, description = match
            components.setdefault(category, []).append((f.path, description))
    return {c: components[c] for c in COMPONENT_ORDER if c in components}


def detect_technologies(files: List[ProjectFile]) -> List[str]:
    found = set()
    for f in files:
        for suffix, tech in TECHNOLOGY_SUFFIXES:
            if f.path.endswith(suffix):
                found.add(tech)
                break
    return sorted(found)


def render_tree(files: List[ProjectFile], max_depth: int = MAX_TREE_DEPTH) -> str:
    root: Dict[str, dict] = {}
    dirs = set()
    for f in files:
        node = root
        for part in f.path.split("/"):
            node = node.setdefault(part, {})
        if f.is_dir:
            dirs.add(f.path)

    lines: List[str] = []

    def walk(node: dict, prefix: str, rel: str, depth: int):
        names = sorted(node)
        for i, name in enumerate(names):
            last = i == len(names) - 1
            conn = "└── " if last else "├── "
            ext_pre = "    " if last else "│   "
            path = f"{rel}{name}"
            is_dir = path in dirs or bool(node[name])
            lines.append(f"{prefix}{conn}{name}{'/' if is_dir else ''}")
            if not node[name]:
                continue
            if depth + 1 >= max_depth:
                lines.append(f"{prefix}{ext_pre}└── ...")
            else:
                walk(node[name], prefix + ext_pre, path + "/", depth + 1)

    walk(root, "", "", 0)
    return "\n".join(lines)


def parse_custom_sections(content: str) -> Dict[str, str]:
    """Collect ``<!-- CUSTOM:name -->...<!-- /CUSTOM:name -->`` blocks from an existing file."""
    return {m.group(1): m.group(2).strip() for m in CUSTOM_SECTION_RE.finditer(content or "")}


def _custom(name: str, text: str) -> str:
    return f"<!-- CUSTOM:{name} -->\n{text}\n<!-- /CUSTOM:{name} -->"


def build_agents_md(project_name: str, files: List[ProjectFile], existing: str = "") -> str:
    project_type, language = detect_project_type(files)
    custom = parse_custom_sections(existing)

    out = ["# AGENTS.md", "", "## Project Overview", "",
           f"**Project:** {project_name}",
           f"**Type:** {project_type}",
           f"**Primary Language:** {language}", ""]
    if "description" in custom:
        out += ["### Description", "", _custom("description", custom["description"]), ""]

    out += ["## Project Structure", "", "```", render_tree(files), "```", ""]

    out += ["## Key Components", ""]
    for category, items in identify_key_components(files).items():
        out += [f"### {category}", ""]
        out += [f"- `{path}`: {description}" for path, description in items]
        out.append("")

    out += ["## Technologies", ""]
    out += [f"- {tech}" for tech in detect_technologies(files)] or ["- None detected"]
    out.append("")

    out += ["## Development Guidelines", ""]
    if "guidelines" in custom:
        out.append(_custom("guidelines", custom["guidelines"]))
    else:
        out.append(DEFAULT_GUIDELINES.format(language=language))
    out.append("")

    out += ["## AI Agent Instructions", ""]
    if "instructions" in custom:
        out.append(_custom("instructions", custom["instructions"]))
    else:
        out.append(DEFAULT_INSTRUCTIONS)
    out.append("")

    extra = [name for name in custom if name not in ("description", "guidelines", "instructions")]
    if extra:
        out += ["## Additional Notes", ""]
        for name in extra:
            out += [_custom(name, custom[name]), ""]

    out += ["---", FOOTER]
    return "\n".join(out) + "\n"


def generate_agents_md(root: Path) -> str:
    """Scan ``root`` and write ``root/AGENTS.md``, keeping custom sections of an existing file."""
    root = Path(root).resolve()
    if not root.is_dir():
        raise ToolError("init", f"Error generating AGENTS.md: not a directory: {root}")
    target = root / AGENTS_FILE
    try:
        existing = target.read_text(encoding="utf-8") if target.exists() else ""
        content = build_agents_md(root.name, scan_project(root), existing)
        target.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ToolError("init", f"Error generating AGENTS.md: {e}") from e
    _log.info("Generated %s (%d bytes)", target, len(content))
    return content


def init_project(args: InitArgs, config: ToolsConfig) -> ToolResult:
    content = generate_agents_md(_resolve(args.path or ".", config))
    output = f"Successfully generated AGENTS.md\n\n{content}"
    return ToolResult(output=truncate_output(output.encode("utf-8"), config.max_output_size))
