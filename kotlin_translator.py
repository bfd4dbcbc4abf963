#!/usr/bin/env python3
"""
Translator backends for the JFlex-to-Kotlin converter.

The Java-to-Kotlin translation itself is done by an external tool. A
translator is any callable taking the prepared source tree and returning
the translated text; this module provides the command-line backed one and
a pass-through used for dry runs.
"""

import subprocess
import tempfile
from pathlib import Path
from string import Template
from typing import List, Optional


class TranslatorError(RuntimeError):
    """The external translator failed or produced no output."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        if stderr:
            message = f"{message}\n{stderr.rstrip()}"
        super().__init__(message)
        self.stderr = stderr


class IdentityTranslator:
    """Returns the prepared Java source unchanged."""

    def __call__(self, tree) -> str:
        return tree.text


class CommandTranslator:
    """Runs an external translator command on a temporary copy of the source.

    Each argument is a string.Template; $input is the Java file written for
    the translator, $output the Kotlin file it is expected to write and
    $workdir the temporary directory holding both. When the command leaves
    no output file, its stdout is taken as the result.
    """

    def __init__(self, command: List[str]):
        if not command:
            raise ValueError("Translator command is empty")
        self.command = list(command)

    def _expand(self, variables: dict) -> List[str]:
        return [Template(arg).safe_substitute(variables) for arg in self.command]

    def __call__(self, tree) -> str:
        name = Path(tree.path).stem if tree.path else "Lexer"

        with tempfile.TemporaryDirectory(prefix="jflex-to-kotlin-") as workdir:
            workdir = Path(workdir)
            input_file = workdir / f"{name}.java"
            output_file = workdir / f"{name}.kt"
            with open(input_file, 'w', encoding='utf-8', newline='') as f:
                f.write(tree.text)

            cmd = self._expand({
                "input": str(input_file),
                "output": str(output_file),
                "workdir": str(workdir),
            })
            result = subprocess.run(
                cmd,
                cwd=workdir,
                capture_output=True,
                text=True,
                encoding='utf-8'
            )

            if result.returncode != 0:
                raise TranslatorError(
                    f"Translator '{cmd[0]}' exited with code {result.returncode}",
                    result.stderr
                )

            if output_file.exists():
                with open(output_file, encoding='utf-8', newline='') as f:
                    return f.read()
            if result.stdout:
                return result.stdout

        raise TranslatorError(f"Translator '{cmd[0]}' produced no output", result.stderr)
