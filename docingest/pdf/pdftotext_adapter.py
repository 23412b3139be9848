import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from docingest.extraction.cancellation import CancellationToken
from docingest.logging.logger import Log
from docingest.pdf.exceptions import (
    CommandTimeoutError,
    EmptyTextLayerError,
    PdfExtractionError,
)

PAGE_BREAK = "\f"
POLL_SECONDS = 0.5


@dataclass(frozen=True)
class CommandPage:
    source_page: int
    text: str


@dataclass(frozen=True)
class CommandText:
    page_count: int
    pages: list[CommandPage]


class PdfToTextAdapter:
    """Runs the poppler `pdftotext` tool and splits its output on form feeds."""

    name = "pdftotext"

    def __init__(self, binary: str = "pdftotext", timeout_seconds: float = 120) -> None:
        self._binary = binary
        self._timeout_seconds = timeout_seconds

    def extract_pages(
        self, pdf_path: Path, token: CancellationToken | None = None
    ) -> CommandText:
        """Return the non-empty pages of a PDF with their 1-based source page index.

        Raises:
            CommandTimeoutError: if the tool runs past the timeout.
            ExtractionCancelledError: if the token is cancelled while the tool runs.
            EmptyTextLayerError: if the tool succeeds but emits no text.
            PdfExtractionError: if the tool is missing or exits non-zero.
        """
        stdout = self._run([self._binary, "-layout", "-enc", "UTF-8", str(pdf_path), "-"], token)
        segments = stdout.split(PAGE_BREAK)
        # poppler terminates every page with a form feed
        if segments and not segments[-1].strip():
            segments.pop()
        pages = [
            CommandPage(source_page=index, text=text.strip())
            for index, text in enumerate(segments, start=1)
            if text.strip()
        ]
        if not pages:
            raise EmptyTextLayerError(f"pdftotext found no text in {pdf_path.name}")
        return CommandText(page_count=len(segments), pages=pages)

    def _run(self, command: list[str], token: CancellationToken | None) -> str:
        try:
            proc = subprocess.Popen(
                command, stdout=subprocess.PIPE, stderr=subprocess.PIPE
            )
        except OSError as exc:
            raise PdfExtractionError(f"Could not start {command[0]}: {exc}") from exc

        deadline = time.monotonic() + self._timeout_seconds
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=POLL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                if token is not None and token.cancelled:
                    self._kill(proc)
                    token.raise_if_cancelled()
                if token is not None:
                    token.beat()
                if time.monotonic() >= deadline:
                    self._kill(proc)
                    raise CommandTimeoutError(
                        f"{command[0]} exceeded {self._timeout_seconds}s"
                    )

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise PdfExtractionError(
                f"{command[0]} exited with {proc.returncode}: {detail}"
            )
        return stdout.decode("utf-8", errors="replace")

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        proc.kill()
        proc.communicate()
        Log.warning(f"Killed external extractor (pid {proc.pid})")
