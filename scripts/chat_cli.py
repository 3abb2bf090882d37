#!/usr/bin/env python3
"""Interactive terminal client for the Maestro conversation service."""

import json
import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt


class ChatCLI:
    """Interactive chat interface for the Maestro service."""

    def __init__(self, base_url: str = "http://localhost:9001"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.session_id: str | None = None
        self.console = Console()
        # Tool loops can run for minutes
        self.client = httpx.Client(timeout=None)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Maestro - Interactive Chat[/bold blue]\n"
                "Type a task for Claude. Press Ctrl+C while it works to cancel.\n"
                "Commands: /help, /clear, /history, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print("[red]Cannot connect to the service. Make sure it's running on port 9001.[/red]")
            return

        self.console.print("[green]Connected to Maestro[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/clear":
                    self.session_id = None
                    self.console.print("[yellow]Session cleared[/yellow]")
                    continue
                elif user_input.lower() == "/history":
                    self._show_history()
                    continue
                elif user_input.strip() == "":
                    continue

                response = self._send_message(user_input)
                if response:
                    self._display_response(response)

        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.console.print("\n[yellow]Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _ensure_session(self) -> bool:
        """Create the session up front so the first turn can be cancelled too."""
        if self.session_id:
            return True
        try:
            response = self.client.post(f"{self.base_url}/sessions")
        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return False
        if response.status_code != 201:
            self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
            return False
        self.session_id = response.json()["session_id"]
        return True

    def _send_message(self, message: str) -> dict | None:
        """Send message to the service, cancelling the run on Ctrl+C."""
        if not self._ensure_session():
            return None
        payload = {"message": message, "session_id": self.session_id}

        try:
            with self.console.status("[dim]Claude is working...[/dim]"):
                response = self.client.post(f"{self.base_url}/conversation", json=payload)
        except KeyboardInterrupt:
            self._cancel()
            return None
        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return None

        if response.status_code != 200:
            self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
            return None

        data = response.json()
        self.session_id = data.get("session_id")
        return data

    def _cancel(self) -> None:
        response = self.client.post(f"{self.base_url}/conversation/{self.session_id}/cancel")
        cancelled = response.status_code == 200 and response.json().get("cancelled")
        self.console.print("[yellow]Run cancelled[/yellow]" if cancelled else "[yellow]Nothing to cancel[/yellow]")

    def _display_response(self, response: dict) -> None:
        """Render the messages added by one request."""
        for message in response.get("messages", []):
            if message["role"] == "user" and all(block["type"] == "text" for block in message["content"]):
                continue
            for block in message["content"]:
                self._display_block(block)

        if response.get("status") == "cancelled":
            self.console.print("[yellow]The run was cancelled.[/yellow]")

    def _display_block(self, block: dict) -> None:
        block_type = block.get("type")
        if block_type == "text":
            self.console.print(
                Panel(Markdown(block["text"]), title="[bold green]Claude[/bold green]", border_style="green")
            )
        elif block_type == "thinking":
            self.console.print(Panel(block["thinking"], title="[dim]Thinking[/dim]", border_style="dim"))
        elif block_type == "redacted_thinking":
            self.console.print(r"[dim]\[redacted thinking][/dim]")
        elif block_type == "tool_use":
            self.console.print(
                Panel(
                    json.dumps(block["input"], indent=2, ensure_ascii=False),
                    title=f"[magenta]Tool: {block['name']}[/magenta]",
                    border_style="magenta",
                )
            )
        elif block_type == "tool_result":
            self._display_tool_result(block)

    def _display_tool_result(self, block: dict) -> None:
        content = block["content"]
        if isinstance(content, str):
            text = content
        else:
            parts = []
            for part in content:
                if part["type"] == "text":
                    parts.append(part["text"])
                else:
                    parts.append("[screenshot]")
            text = "\n".join(parts)

        style = "red" if block.get("is_error") else "blue"
        self.console.print(Panel(text, title=f"[{style}]Result[/{style}]", border_style=style))

    def _show_history(self) -> None:
        if not self.session_id:
            self.console.print("[yellow]No session yet[/yellow]")
            return
        response = self.client.get(f"{self.base_url}/sessions/{self.session_id}")
        if response.status_code != 200:
            self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
            return
        record = response.json()
        self.console.print(f"[bold]{record['title']}[/bold] ({len(record['messages'])} messages)")
        self._display_response({"messages": record["messages"]})

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Start a new session
• /history - Show the current session's messages
• /quit or /exit - Exit the chat

[bold]Example Tasks:[/bold]
1. "List the files in /tmp"
2. "Take a screenshot and tell me which windows are open"
3. "Create /tmp/notes.txt containing today's date"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:9001"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
