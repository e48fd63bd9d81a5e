"""Unit tests for PackageManager.

Ecosystem tools are replaced by small shell scripts so the tests never
touch a real registry.
"""

import asyncio
from typing import List

import pytest

from toolsmith.errors import UnsupportedRuntimeError
from toolsmith.packages import PackageManager
from toolsmith.runtime import RuntimeKind
from toolsmith.utils.streams import STREAM_LIMIT

PIP_LIST = """cat <<'EOF'
[{"name": "requests", "version": "2.31.0"}, {"name": "six", "version": "1.16.0"}]
EOF
"""

GO_LIST = """cat <<'EOF'
{
	"Path": "example.com/app",
	"Main": true
}
{
	"Path": "github.com/pkg/errors",
	"Version": "v0.9.1"
}
EOF
"""


class TestListPackages:
    @pytest.mark.asyncio
    async def test_pip_listing(self, fake_tool, temp_project_dir):
        python = fake_tool("python", PIP_LIST)
        packages = await PackageManager().list_packages(
            RuntimeKind.DYNAMIC, temp_project_dir, str(python)
        )
        assert [p.name for p in packages] == ["requests", "six"]

    @pytest.mark.asyncio
    async def test_runs_in_project_dir(self, fake_tool, temp_project_dir):
        """The listing command's working directory is the project."""
        python = fake_tool("python", 'printf \'[{"name": "%s", "version": "1"}]\' "$(basename "$(pwd -P)")"\n')
        (package,) = await PackageManager().list_packages(
            RuntimeKind.DYNAMIC, temp_project_dir, str(python)
        )
        assert package.name == temp_project_dir.name

    @pytest.mark.asyncio
    async def test_go_listing(self, fake_tool, temp_project_dir):
        go = fake_tool("go", GO_LIST)
        packages = await PackageManager().list_packages(
            RuntimeKind.COMPILED, temp_project_dir, str(go)
        )
        assert [(p.name, p.version) for p in packages] == [("github.com/pkg/errors", "v0.9.1")]

    @pytest.mark.asyncio
    async def test_npm_next_to_node_nonzero_accepted(self, fake_tool, temp_project_dir):
        """npm is found beside the interpreter and its exit code 1 is tolerated."""
        node = fake_tool("node", "exit 0\n")
        fake_tool(
            "npm",
            """cat <<'EOF'
{"dependencies": {"lodash": {"version": "4.17.21"}}}
EOF
exit 1
""",
        )
        packages = await PackageManager().list_packages(
            RuntimeKind.SCRIPTED, temp_project_dir, str(node)
        )
        assert [(p.name, p.version) for p in packages] == [("lodash", "4.17.21")]

    @pytest.mark.asyncio
    async def test_nonzero_exit_returns_empty(self, fake_tool, temp_project_dir):
        python = fake_tool("python", PIP_LIST + "exit 1\n")
        packages = await PackageManager().list_packages(
            RuntimeKind.DYNAMIC, temp_project_dir, str(python)
        )
        assert packages == []

    @pytest.mark.asyncio
    async def test_malformed_output_returns_empty(self, fake_tool, temp_project_dir):
        python = fake_tool("python", "echo 'WARNING: not json'\n")
        packages = await PackageManager().list_packages(
            RuntimeKind.DYNAMIC, temp_project_dir, str(python)
        )
        assert packages == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(RuntimeKind))
    async def test_missing_interpreter_returns_empty(self, kind, temp_project_dir):
        missing = str(temp_project_dir / "does-not-exist")
        assert await PackageManager().list_packages(kind, temp_project_dir, missing) == []

    @pytest.mark.asyncio
    async def test_timeout_returns_empty(self, fake_tool, temp_project_dir):
        python = fake_tool("python", "exec sleep 10\n")
        manager = PackageManager(command_timeout=0.5)
        assert await manager.list_packages(RuntimeKind.DYNAMIC, temp_project_dir, str(python)) == []


class TestMutations:
    """install / uninstall / update"""

    @pytest.mark.asyncio
    async def test_install_success_streams_lines(self, fake_tool, temp_project_dir):
        python = fake_tool(
            "python",
            'echo "Collecting $4"\necho "Successfully installed $4-2.31.0"\n',
        )
        lines: List[str] = []
        result = await PackageManager().install_package(
            RuntimeKind.DYNAMIC, "requests", temp_project_dir, str(python), lines.append
        )

        assert result.ok
        assert result.exit_code == 0
        assert result.last_line == "Successfully installed requests-2.31.0"
        assert lines == [
            "Installing requests...",
            "Collecting requests",
            "Successfully installed requests-2.31.0",
            "✓ requests installed successfully",
        ]

    @pytest.mark.asyncio
    async def test_install_failure_reports_exit_code(self, fake_tool, temp_project_dir):
        """stderr is merged into the forwarded output."""
        python = fake_tool(
            "python",
            'echo "Collecting $4"\necho "ERROR: No matching distribution found for $4" >&2\nexit 3\n',
        )
        lines: List[str] = []
        result = await PackageManager().install_package(
            RuntimeKind.DYNAMIC, "nope-pkg", temp_project_dir, str(python), lines.append
        )

        assert not result
        assert result.exit_code == 3
        assert result.last_line == "ERROR: No matching distribution found for nope-pkg"
        assert "ERROR: No matching distribution found for nope-pkg" in lines
        assert lines[-1] == "✗ Failed to install nope-pkg"

    @pytest.mark.asyncio
    async def test_uninstall_passes_yes_flag(self, fake_tool, temp_project_dir):
        python = fake_tool("python", 'echo "$@"\n')
        lines: List[str] = []
        result = await PackageManager().uninstall_package(
            RuntimeKind.DYNAMIC, "six", temp_project_dir, str(python), lines.append
        )

        assert result.ok
        assert "-m pip uninstall -y six" in lines
        assert lines[0] == "Uninstalling six..."
        assert lines[-1] == "✓ six uninstalled successfully"

    @pytest.mark.asyncio
    async def test_update_uses_upgrade(self, fake_tool, temp_project_dir):
        go = fake_tool("go", 'echo "$@"\n')
        lines: List[str] = []
        result = await PackageManager().update_package(
            RuntimeKind.COMPILED, "github.com/pkg/errors", temp_project_dir, str(go), lines.append
        )

        assert result.ok
        assert "get -u github.com/pkg/errors" in lines
        assert lines[-1] == "✓ github.com/pkg/errors updated successfully"

    @pytest.mark.asyncio
    async def test_without_observer(self, fake_tool, temp_project_dir):
        python = fake_tool("python", "echo ok\n")
        result = await PackageManager().install_package(
            RuntimeKind.DYNAMIC, "requests", temp_project_dir, str(python)
        )
        assert result.ok
        assert result.last_line == "ok"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", "-r", "--index-url"])
    async def test_invalid_names_spawn_nothing(self, name, fake_tool, temp_project_dir):
        marker = temp_project_dir / "spawned"
        python = fake_tool("python", f'touch "{marker}"\n')
        lines: List[str] = []
        result = await PackageManager().install_package(
            RuntimeKind.DYNAMIC, name, temp_project_dir, str(python), lines.append
        )

        assert not result.ok
        assert not marker.exists()
        assert lines[-1].startswith("✗ Invalid package name")

    @pytest.mark.asyncio
    async def test_missing_interpreter(self, temp_project_dir):
        lines: List[str] = []
        result = await PackageManager().install_package(
            RuntimeKind.DYNAMIC,
            "requests",
            temp_project_dir,
            str(temp_project_dir / "missing-python"),
            lines.append,
        )

        assert not result.ok
        assert result.exit_code is None
        assert "Interpreter not found" in result.last_line
        assert lines[-1] == "✗ Failed to install requests"

    @pytest.mark.asyncio
    async def test_timeout_kills_command(self, fake_tool, temp_project_dir):
        python = fake_tool("python", "echo started\nexec sleep 10\n")
        manager = PackageManager(command_timeout=0.5)
        result = await manager.install_package(
            RuntimeKind.DYNAMIC, "requests", temp_project_dir, str(python)
        )

        assert not result.ok
        assert "timed out" in result.last_line

    @pytest.mark.asyncio
    async def test_oversized_output_line(self, fake_tool, temp_project_dir):
        """A line over the stream limit is truncated and the command still completes."""
        python = fake_tool("python", "head -c 3000000 /dev/zero | tr '\\0' x\necho\necho ok\n")
        lines: List[str] = []
        result = await PackageManager().install_package(
            RuntimeKind.DYNAMIC, "requests", temp_project_dir, str(python), lines.append
        )

        assert result.ok
        assert result.last_line == "ok"
        assert len(lines[1]) == STREAM_LIMIT
        assert set(lines[1]) == {"x"}
        assert lines[-2:] == ["ok", "✓ requests installed successfully"]

    @pytest.mark.asyncio
    async def test_failing_observer_kills_command(self, fake_tool, temp_project_dir):
        """An observer error becomes a failed result and the command is reaped."""
        python = fake_tool("python", "echo boom\nexec sleep 10\n")
        lines: List[str] = []

        def observer(line: str) -> None:
            if line == "boom":
                raise RuntimeError("observer broke")
            lines.append(line)

        result = await asyncio.wait_for(
            PackageManager().install_package(
                RuntimeKind.DYNAMIC, "requests", temp_project_dir, str(python), observer
            ),
            timeout=5,
        )

        assert not result.ok
        assert result.last_line == "boom"
        assert lines[-1] == "✗ Failed to install requests"
        assert any("observer broke" in line for line in lines)


class TestSearch:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(RuntimeKind))
    async def test_search_is_empty(self, kind):
        assert await PackageManager().search(kind, "http") == []

    @pytest.mark.asyncio
    async def test_search_unsupported_kind(self):
        with pytest.raises(UnsupportedRuntimeError):
            await PackageManager().search("ruby", "rails")  # type: ignore[arg-type]


class TestToolResolution:
    def test_sibling_tool_wins(self, fake_tool):
        node = fake_tool("node", "exit 0\n")
        npm = fake_tool("npm", "exit 0\n")
        assert PackageManager._resolve_tool("npm", str(node)) == str(npm)

    def test_falls_back_to_bare_name(self, temp_project_dir):
        resolved = PackageManager._resolve_tool(
            "this_tool_does_not_exist_12345", str(temp_project_dir / "node")
        )
        assert resolved == "this_tool_does_not_exist_12345"
