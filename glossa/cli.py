"""
Glossa Command-Line Interface

Usage:
    glossa serve --max-generations 3 --dictionary-updates
    glossa agent config/agents/agent_a.toml
    glossa test-connection config/agents/agent_a.toml
"""

import sys
import asyncio
import argparse
import logging

from glossa import __version__
from glossa.communication.errors import CoordinationError

logger = logging.getLogger(__name__)


def server_overrides(args) -> dict:
    """Command-line flags as ServerConfig overrides; unset flags are None and ignored."""
    return {
        "name": args.name,
        "host": args.host,
        "router_port": args.router_port,
        "web_port": args.web_port,
        "max_exchanges": args.max_exchanges,
        "max_generations": args.max_generations,
        "target_agents": args.target_agents,
        "system_reply_timeout": args.system_reply_timeout,
        "dictionary_updates": args.dictionary_updates,
        "logogram_iterations": args.logogram_iterations,
        "dictionary_extraction": args.dictionary_extraction,
        "specifications_dir": args.specifications_dir,
        "dictionary_path": args.dictionary_path,
        "logography_dir": args.logography_dir,
        "outputs_dir": args.outputs_dir,
        "export_data": False if args.no_export else None,
        "debug": args.debug,
        "log_to_file": args.log_to_file,
        "broadcast_test_data": args.broadcast_test_data,
        "test_chats_path": args.test_chats,
        "test_generations_path": args.test_generations,
    }


def cmd_serve(args):
    """Run the coordination server until evolution fails or it is interrupted."""
    from glossa.config import load_server_config
    from glossa.server import ConlangServer
    from glossa.utils.log_setup import default_log_file, setup_logging

    config = load_server_config(args.config, server_overrides(args))
    setup_logging(config.debug, default_log_file(config.outputs_dir) if config.log_to_file else None)
    logger.info(f"Glossa {__version__} server {config.name} starting")

    server = ConlangServer(config)
    error = asyncio.run(server.run())
    if error is not None:
        logger.error(f"Server stopped: {error}")
        return 1
    return 0


def cmd_agent(args):
    """Run one agent connected to the hub."""
    from glossa.agents.chat_agent import ChatAgent
    from glossa.agents.config import load_agent_config
    from glossa.llm.providers import create_provider
    from glossa.utils.log_setup import setup_logging

    setup_logging(args.debug)
    config = load_agent_config(args.config, {
        "name": args.name,
        "layer": args.layer,
        "peers": args.peers,
        "model.provider": args.provider,
        "network.router": args.router,
    })

    agent = ChatAgent(config, build_provider(config, create_provider, args.debug))
    asyncio.run(agent.run())
    return 0


def cmd_test_connection(args):
    """Test the agent's LLM provider connection."""
    from glossa.agents.config import load_agent_config
    from glossa.llm.providers import create_provider

    config = load_agent_config(args.config)
    provider = build_provider(config, create_provider, False)

    print(f"Testing {provider.get_provider_name()} for {config.name}")
    if provider.test_connection():
        print("✓ Provider connected")
        return 0
    print("✗ Provider unreachable")
    return 1


def build_provider(config, create_provider, verbose: bool):
    kwargs = {"verbose_logging": verbose}
    model = config.model
    if model.provider != "echo":
        kwargs.update(model=model.model, api_key=model.api_key or None, timeout=model.timeout)
        if model.base_url:
            kwargs["base_url"] = model.base_url
    return create_provider(model.provider, **kwargs)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Glossa - conlang evolution with cooperating LLM agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  glossa serve                                   # Defaults from config/server.yaml
  glossa serve --max-generations 3 --max-exchanges 10
  glossa serve --dictionary-updates --logogram-iterations
  glossa agent config/agents/agent_a.toml
  glossa agent config/agents/system_agent_a.toml --router localhost:50051
  glossa test-connection config/agents/agent_a.toml
        """
    )

    parser.add_argument('--version', action='version', version=f'Glossa {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Serve command
    serve_parser = subparsers.add_parser('serve', help='Run the coordination server')
    serve_parser.add_argument('--config', default=None,
                              help='Server config file (default: config/server.yaml)')
    serve_parser.add_argument('--name', help='Server name agents address replies to')
    serve_parser.add_argument('--host', help='Interface to bind')
    serve_parser.add_argument('--router-port', type=int, help='Agent websocket port (default: 50051)')
    serve_parser.add_argument('--web-port', type=int, help='Web event stream port (default: 7070)')
    serve_parser.add_argument('--max-exchanges', type=int, help='Exchanges per layer')
    serve_parser.add_argument('--max-generations', type=int, help='Generations to evolve')
    serve_parser.add_argument('--target-agents', type=int, help='Agents required before evolving')
    serve_parser.add_argument('--system-reply-timeout', type=float,
                              help='Seconds to wait for a system agent reply')
    serve_parser.add_argument('--dictionary-updates', action='store_true', default=None,
                              help='Update the dictionary each generation')
    serve_parser.add_argument('--logogram-iterations', action='store_true', default=None,
                              help='Iterate logograms each generation')
    serve_parser.add_argument('--dictionary-extraction', choices=['regex', 'agent'],
                              help='How used words are detected')
    serve_parser.add_argument('--specifications-dir', help='Directory of <layer>.md specifications')
    serve_parser.add_argument('--dictionary-path', help='Seed dictionary JSON')
    serve_parser.add_argument('--logography-dir', help='Directory of seed logogram SVGs')
    serve_parser.add_argument('--outputs-dir', help='Where snapshots and logs are written')
    serve_parser.add_argument('--no-export', action='store_true',
                              help='Do not export chats and generations when done')
    serve_parser.add_argument('--debug', action='store_true', default=None, help='Debug logging')
    serve_parser.add_argument('--log-to-file', action='store_true', default=None,
                              help='Also log to <outputs>/logs')
    serve_parser.add_argument('--broadcast-test-data', action='store_true', default=None,
                              help='Stream recorded data on the /test endpoints')
    serve_parser.add_argument('--test-chats', help='Recorded chats JSON for /test/chat')
    serve_parser.add_argument('--test-generations', help='Recorded generations JSON for /test/generations')
    serve_parser.set_defaults(func=cmd_serve)

    # Agent command
    agent_parser = subparsers.add_parser('agent', help='Run an agent')
    agent_parser.add_argument('config', help='Agent config file (.toml or .yaml)')
    agent_parser.add_argument('--name', help='Override the agent name')
    agent_parser.add_argument('--layer', type=int, help='Override the agent layer')
    agent_parser.add_argument('--peers', nargs='+', help='Override the agent peers')
    agent_parser.add_argument('--provider', help='Override the model provider')
    agent_parser.add_argument('--router', help='Hub address, host:port')
    agent_parser.add_argument('--debug', action='store_true', help='Debug logging')
    agent_parser.set_defaults(func=cmd_agent)

    # Test connection command
    test_parser = subparsers.add_parser('test-connection', help="Test an agent's LLM provider")
    test_parser.add_argument('config', help='Agent config file (.toml or .yaml)')
    test_parser.set_defaults(func=cmd_test_connection)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")
        return 130
    except CoordinationError as e:
        print(f"\n❌ Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
