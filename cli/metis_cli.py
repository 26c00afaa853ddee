"""Main CLI loop for interactive chat."""

import logging
import sys
from typing import TextIO

from pydantic import TypeAdapter, ValidationError

from metis.configs.system import DEFAULT_DASHBOARD
from metis.core.conversation import Conversation
from metis.core.gateway import StreamEvent, TranscriptBuilder
from metis.core.messages import ROLE_USER, ChatMessage, dump_messages
from metis.infra.id_utils import new_message_id

from .client import METADATA_EVENT, MetisAPIClient
from .config import CLIConfig
from .formatter import ResponseFormatter

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit", "q")
CLEAR_COMMAND = "/clear"

_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


class MetisCLI:
    """Interactive CLI for the Metis API."""

    def __init__(
        self,
        config: CLIConfig,
        input_stream: TextIO = sys.stdin,
        output_stream: TextIO = sys.stdout,
        show_tool_results: bool = False,
        client: MetisAPIClient | None = None,
    ):
        self.config = config
        self.input_stream = input_stream
        self.output_stream = output_stream
        self.show_tool_results = show_tool_results
        self.client = client or MetisAPIClient(config)
        self.conversation = Conversation(self.client, dashboard=config.dashboard)

    async def run(self) -> None:
        try:
            await self._resume()
            self._print_welcome()
            while True:
                try:
                    query = self._get_user_input().strip()
                    if not query:
                        continue
                    if query.lower() in EXIT_COMMANDS:
                        self._print("Goodbye!\n")
                        break
                    if query.lower() == CLEAR_COMMAND:
                        new_id = await self.conversation.clear()
                        self._print(f"Started a new conversation ({new_id}).\n\n")
                        continue
                    await self._process_query(query)
                except KeyboardInterrupt:
                    self._print("\n\nInterrupted. Use 'exit' or 'quit' to exit.\n")
                except EOFError:
                    self._print("\nGoodbye!\n")
                    break
        finally:
            await self.client.close()

    async def _resume(self) -> None:
        try:
            resumed = await self.conversation.resume()
        except Exception as e:
            logger.debug("Session resume failed: %s", e)
            self._print("Could not load the previous conversation.\n")
            return
        if resumed:
            self._print(
                f"Resumed conversation {self.conversation.session_id} "
                f"({len(self.conversation.messages)} messages).\n"
            )

    async def _process_query(self, query: str) -> None:
        formatter = ResponseFormatter(self.output_stream, self.show_tool_results)
        transcript = TranscriptBuilder()
        user_message = ChatMessage.from_text(ROLE_USER, query, id=new_message_id())
        history = dump_messages([*self.conversation.messages, user_message])

        async for event in self.client.chat(
            history,
            session_id=self.conversation.session_id,
            dashboard=self.conversation.dashboard,
        ):
            formatter.handle_event(event)
            if event.get("type") == METADATA_EVENT:
                continue
            try:
                transcript.add(_EVENT_ADAPTER.validate_python(event))
            except ValidationError:
                logger.debug("Ignoring unrecognised event %s", event)

        formatter.finish_response()
        self._print("\n")
        # The server saved the exchange; mirror it locally for the next turn.
        if not transcript.empty:
            self.conversation.record(user_message, transcript.build())

    def _get_user_input(self) -> str:
        self._print("> ")
        line = self.input_stream.readline()
        if not line:
            raise EOFError
        return line.rstrip("\n\r")

    def _print_welcome(self) -> None:
        self._print("Metis CLI - ask about your sales data\n")
        self._print(f"Connected to: {self.config.chat_url}\n")
        self._print(
            f"Type '{CLEAR_COMMAND}' to start over, 'exit' or 'quit' to leave.\n\n"
        )

    def _print(self, text: str) -> None:
        self.output_stream.write(text)
        self.output_stream.flush()


async def main(
    host: str = "localhost",
    port: int = 8080,
    dashboard: str = DEFAULT_DASHBOARD,
    debug: bool = False,
    show_tool_results: bool = False,
) -> None:
    """Run the interactive CLI."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    config = CLIConfig(host=host, port=port, dashboard=dashboard)
    cli = MetisCLI(config, show_tool_results=show_tool_results)
    await cli.run()
