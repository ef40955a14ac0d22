"""
Command-line interface for ChatNav
"""

import argparse
import json
import logging
import sys
import uuid
from typing import Optional, Dict, Any

from colorama import init, Fore, Style

from ..core.engine import ChatNavEngine
from ..core.config import Config
from ..core.exceptions import ChatNavError
from ..core.types import EngineResponse

init()


def setup_logging(config: Optional[Config] = None, debug: bool = False, verbose: bool = False) -> int:
    """
    Setup logging from the config's logging section; --debug and --verbose
    take precedence over logging.level. Returns the level applied.
    """
    config = config or Config()
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = getattr(logging, str(config.get('logging.level', 'WARNING')).upper(), logging.WARNING)

    logging.basicConfig(
        level=log_level,
        format=config.get('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
        datefmt='%H:%M:%S'
    )

    # Suppress noisy HTTP loggers unless debug is explicitly enabled
    if not debug:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('requests').setLevel(logging.WARNING)

        logging.getLogger('chatnav').setLevel(log_level)
        logging.getLogger('ChatNavEngine').setLevel(log_level)

    return log_level


def _load_json(path: Optional[str]) -> Any:
    if not path:
        return None
    with open(path, 'r') as f:
        return json.load(f)


class ChatNavCLI:
    """
    Interactive REPL around the engine. REPL commands start with ':' so
    plain words like "exit" still reach the engine as stop phrases.
    """

    def __init__(self, config_path: Optional[str] = None, no_bridge: bool = False):
        self.config = Config(config_path)
        if no_bridge:
            self.config.set('bridge.enabled', False)
        self.engine: Optional[ChatNavEngine] = None
        self.conversation_id = uuid.uuid4().hex[:8]
        self.ui_snapshot: Optional[Dict[str, Any]] = None
        self.logger = logging.getLogger(__name__)

    def start_engine(self, manifests_path: Optional[str] = None) -> bool:
        try:
            self.engine = ChatNavEngine(self.config)
            if manifests_path:
                self.engine.register_manifests(_load_json(manifests_path) or [])
            self.logger.info("ChatNav engine initialized successfully")
            return True
        except (ChatNavError, OSError, ValueError) as e:
            self._print_error(f"Failed to initialize ChatNav: {e}")
            return False

    def load_ui_snapshot(self, path: str) -> bool:
        try:
            self.ui_snapshot = _load_json(path)
            return True
        except (OSError, ValueError) as e:
            self._print_error(f"Could not read UI snapshot {path}: {e}")
            return False

    def run_interactive(self, manifests_path: Optional[str] = None) -> int:
        if not self.start_engine(manifests_path):
            return 1

        self._print_header("ChatNav Interactive Mode")
        print("Type ':quit' to end the session, ':help' for REPL commands")
        print()

        try:
            while True:
                try:
                    user_input = input(f"{Fore.CYAN}You: {Style.RESET_ALL}").strip()
                except EOFError:
                    break

                if not user_input:
                    continue

                if user_input.startswith(':'):
                    if not self._handle_command(user_input):
                        break
                    continue

                response = self.engine.handle(self.conversation_id, user_input, self.ui_snapshot)
                self._display_response(response)

        except KeyboardInterrupt:
            print()
        finally:
            if self.engine:
                self.engine.close()

        return 0

    def _handle_command(self, command: str) -> bool:
        name, _, arg = command[1:].partition(' ')
        name = name.lower()

        if name in ('quit', 'q'):
            return False
        elif name == 'help':
            self._show_help()
        elif name == 'new':
            self.conversation_id = uuid.uuid4().hex[:8]
            self._print_success(f"Started new conversation: {self.conversation_id}")
        elif name == 'ui':
            if self.load_ui_snapshot(arg.strip()):
                self._print_success(f"Loaded UI snapshot from {arg.strip()}")
        elif name == 'state':
            self._show_state()
        else:
            self._print_error(f"Unknown command: {name}")
        return True

    def _display_response(self, response: EngineResponse):
        color = Fore.RED if response.error_kind else Fore.GREEN
        print(f"{color}ChatNav [{response.tier}]: {Style.RESET_ALL}{response.message}")

        if response.action is not None:
            status = 'executed' if response.executed else 'not executed'
            print(f"{Fore.MAGENTA}Action: {Style.RESET_ALL}"
                  f"{response.action.kind.value} -> {response.action.target_id} ({status})")
        print()

    def _show_state(self):
        state = self.engine.get_state(self.conversation_id) if self.engine else None
        if state is None:
            print(f"{Fore.RED}No state for this conversation yet{Style.RESET_ALL}")
            return
        print(f"{Fore.CYAN}Session State:{Style.RESET_ALL}")
        print(json.dumps(state.to_dict(), indent=2, default=str))
        print()

    def _show_help(self):
        print(f"{Fore.CYAN}REPL Commands:{Style.RESET_ALL}")
        print("  :help        - Show this help message")
        print("  :new         - Start a new conversation")
        print("  :ui <file>   - Load a UI snapshot JSON file")
        print("  :state       - Show session state")
        print("  :quit        - Exit the program")
        print()

    def _print_header(self, text: str):
        print(f"\n{Fore.CYAN}{'=' * 60}")
        print(f"{text}")
        print(f"{'=' * 60}{Style.RESET_ALL}")

    def _print_success(self, text: str):
        print(f"{Fore.GREEN}[SUCCESS] {text}{Style.RESET_ALL}")

    def _print_error(self, text: str):
        print(f"{Fore.RED}[ERROR] {text}{Style.RESET_ALL}")


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(description='ChatNav chat intent resolution engine')
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--ui-snapshot', help='UI snapshot JSON file (visible widgets, focus)')
    parser.add_argument('--manifests', help='JSON file holding a list of panel manifests')
    parser.add_argument('--no-bridge', action='store_true', help='Run without the LLM bridge')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable info logging')
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging (shows HTTP and internal debug logs)'
    )

    args = parser.parse_args()

    try:
        cli = ChatNavCLI(args.config, no_bridge=args.no_bridge)
    except ChatNavError as e:
        print(f"{Fore.RED}[ERROR] {e}{Style.RESET_ALL}")
        return 1

    setup_logging(cli.config, debug=args.debug, verbose=args.verbose)

    if args.ui_snapshot and not cli.load_ui_snapshot(args.ui_snapshot):
        return 1

    return cli.run_interactive(args.manifests)


if __name__ == '__main__':
    sys.exit(main())
