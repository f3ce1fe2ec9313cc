import io
from typing import Sequence

from rich.console import Console
from rich.text import Text

from src.infrascan.models import Credentials, FileBlob

STYLES = {
    "header": "bold blue",
    "success": "green",
    "error": "red",
    "warning": "yellow",
    "info": "cyan",
    "bold": "bold",
}


class ExtractionReport:
    """Progress log of a file-upload job, stored on the job as ANSI text."""

    def __init__(self):
        self.text = Text()

    def add(self, line: str, kind: str = "normal") -> "ExtractionReport":
        self.text.append(line, style=STYLES.get(kind))
        return self

    def uploaded(self, files: Sequence[FileBlob]) -> None:
        self.add("=== File Upload Analysis ===\n\n", "header")
        self.add(f"Successfully uploaded {len(files)} file(s)\n\n", "success")
        self.add("Files:\n", "info")
        for index, blob in enumerate(files, start=1):
            self.add(f"{index}. {blob.name} ({blob.size / 1024:.1f} KB)\n")
        self.add("\nExtracting AWS credentials from files...\n")

    def attempt(self, name: str) -> None:
        self.add(f"\nProcessing {name}...\n")

    def found(self, credentials: Credentials) -> None:
        self.add("✓ Successfully extracted AWS credentials\n", "success")
        self.add(f"  Access Key ID: {credentials.masked_access_key()}\n")
        self.add(f"  Region: {credentials.region}\n")

    def rejected(self, reason: str) -> None:
        self.add(f"✗ {reason}\n", "error")

    def nothing_found(self) -> None:
        self.add("\nFailed to extract AWS credentials from any of the uploaded files.\n", "error")
        self.add("Please ensure your files contain valid AWS credentials in a recognizable format.\n")

    def starting_analysis(self) -> None:
        self.add("\nRunning AWS infrastructure analysis with extracted credentials...\n", "info")

    @property
    def plain(self) -> str:
        return self.text.plain

    def render(self) -> str:
        """ANSI-coloured rendering for terminal display."""
        console = Console(
            file=io.StringIO(), force_terminal=True, color_system="standard", no_color=False, soft_wrap=True
        )
        with console.capture() as capture:
            console.print(self.text, end="", highlight=False)
        return capture.get()
