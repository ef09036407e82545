#!/usr/bin/env python3
"""Interactive chat CLI for the toolchat service."""

import json
import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt


class ChatCLI:
    """Interactive chat interface that streams answers from the service."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.session_id: str | None = None
        self.messages: list[dict[str, str]] = []
        self.console = Console()
        self.client = httpx.Client(timeout=120.0)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Toolchat - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /session, /history, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]Connected[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/session":
                    self._show_session()
                    continue
                elif user_input.lower() == "/history":
                    self._show_history()
                    continue
                elif user_input.lower() == "/clear":
                    self.session_id = None
                    self.messages = []
                    self.console.print("[yellow]Session cleared[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                self.messages.append({"role": "user", "content": user_input})
                answer = self._send_messages()
                if answer is not None:
                    self.messages.append({"role": "assistant", "content": answer})
                    self.console.print(
                        Panel(Markdown(answer), title="[bold green]Assistant[/bold green]", border_style="green")
                    )
                else:
                    self.messages.pop()

        except KeyboardInterrupt:
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

    def _send_messages(self) -> str | None:
        """Post the conversation and print streamed tokens as they arrive."""
        payload: dict = {"messages": self.messages}
        if self.session_id:
            payload["sessionId"] = self.session_id

        chunks: list[str] = []
        try:
            with self.client.stream("POST", f"{self.base_url}/api/chat", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]API Error: {response.status_code} - {response.text}[/red]")
                    return None

                self.session_id = response.headers.get("X-Session-Id", self.session_id)

                for line in response.iter_lines():
                    if not line.startswith("data: "):
                        continue
                    event = json.loads(line[len("data: ") :])
                    if event["type"] == "text":
                        chunks.append(event["content"])
                        self.console.print(event["content"], end="", style="dim")
                    elif event["type"] == "error":
                        self.console.print(f"\n[red]Error: {event.get('message')}[/red]")
                    elif event["type"] == "done" and event.get("truncated"):
                        self.console.print("\n[yellow](stopped after reaching the tool step limit)[/yellow]")

            self.console.print()
            return "".join(chunks)

        except httpx.HTTPError as e:
            self.console.print(f"[red]Connection error: {e}[/red]")
            return None

    def _show_session(self) -> None:
        if not self.session_id:
            self.console.print("[yellow]No session yet[/yellow]")
            return
        response = self.client.get(f"{self.base_url}/api/chat/session", params={"sessionId": self.session_id})
        self.console.print(Panel(response.text, title=f"Session {self.session_id}", border_style="cyan"))

    def _show_history(self) -> None:
        """Show the transcript the service recorded for this session."""
        if not self.session_id:
            self.console.print("[yellow]No session yet[/yellow]")
            return
        response = self.client.get(f"{self.base_url}/api/chat/conversation", params={"sessionId": self.session_id})
        if response.status_code != 200:
            self.console.print(f"[yellow]{response.json().get('message', response.text)}[/yellow]")
            return
        for message in response.json()["messages"]:
            self.console.print(f"[bold]{message['role']}[/bold]: {message['content']}")

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /session - Show the stored session record
• /history - Show the recorded conversation
• /clear - Clear session and start over
• /quit or /exit - Exit the chat

[bold]Things to try:[/bold]
1. "What's 15 * 23?"
2. "What time is it in Tokyo?"
3. "How many messages have we exchanged so far?"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
