"""Per-feature agent context files stored inside a project checkout."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

AUTOMAKER_DIR = ".automaker"
PREVIEW_LINES = 50

_MEMORY_TEMPLATE = """
**Agent Memory - Previous Lessons Learned:**

The following memory file contains lessons learned from previous agent runs, including common issues and their solutions. Review this carefully to avoid repeating past mistakes.

<agent-memory>
{content}
</agent-memory>

**IMPORTANT:** If you encounter a new issue that took significant debugging effort to resolve, add it to the memory file at `.automaker/memory.md` in a concise format:
- Issue title
- Problem description (1-2 sentences)
- Solution/fix (with code example if helpful)

This helps future agent runs avoid the same pitfalls.
"""


class ContextManager:
    """Read, append to and delete ``.automaker/agents-context/<feature>.md``."""

    @staticmethod
    def context_path(project_path: str, feature_id: str) -> Path:
        return Path(project_path) / AUTOMAKER_DIR / "agents-context" / f"{feature_id}.md"

    def write(self, project_path: str, feature_id: str, content: str) -> None:
        """Append ``content`` to the feature's file, creating it if needed."""
        if not project_path:
            return
        path = self.context_path(project_path, feature_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as fh:
                fh.write(content)
        except OSError as exc:
            logger.error("Failed to write to context file %s: %s", path, exc)

    def read(self, project_path: str, feature_id: str) -> Optional[str]:
        path = self.context_path(project_path, feature_id)
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            logger.info("No context file found for %s", feature_id)
            return None

    def delete(self, project_path: str, feature_id: str) -> None:
        """Remove the feature's file; an already missing file is fine."""
        if not project_path:
            return
        path = self.context_path(project_path, feature_id)
        try:
            path.unlink()
            logger.info("Deleted agent context for feature %s", feature_id)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Failed to delete context file %s: %s", path, exc)

    def memory_content(self, project_path: str) -> str:
        """Return ``.automaker/memory.md`` wrapped for prompt injection."""
        if not project_path:
            return ""
        memory_path = Path(project_path) / AUTOMAKER_DIR / "memory.md"
        if not memory_path.is_file():
            return ""
        try:
            content = memory_path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to read memory file: %s", exc)
            return ""
        if not content.strip():
            return ""
        return _MEMORY_TEMPLATE.format(content=content)

    def context_files_preview(self, project_path: str) -> str:
        """List ``.automaker/context/`` with the first lines of each file."""
        if not project_path:
            return ""
        context_dir = Path(project_path) / AUTOMAKER_DIR / "context"
        if not context_dir.is_dir():
            return ""
        try:
            files = sorted(entry.name for entry in context_dir.iterdir() if entry.is_file())
        except OSError as exc:
            logger.error("Failed to list context files: %s", exc)
            return ""
        if not files:
            return ""

        previews = [
            "\n**Context Files Available:**\n",
            "The following context files are available in `.automaker/context/` directory.",
            "These files contain additional context that may be relevant to your work.",
            "You can read them in full using the Read tool if needed.\n",
        ]
        for file_name in files:
            try:
                lines = (context_dir / file_name).read_text(encoding="utf-8").split("\n")
            except (OSError, UnicodeDecodeError) as exc:
                logger.error("Failed to read context file %s: %s", file_name, exc)
                previews.append(f"\n**File: {file_name}** (Error reading file)\n")
                continue

            previews.append(f"\n**File: {file_name}**")
            if len(lines) > PREVIEW_LINES:
                previews.append(
                    f"(Showing first {PREVIEW_LINES} of {len(lines)} lines - "
                    "use Read tool to see full content)"
                )
            previews.append("```")
            previews.append("\n".join(lines[:PREVIEW_LINES]))
            previews.append("```\n")

        return "\n".join(previews)
