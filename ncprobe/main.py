import sys
import argparse
import traceback
from typing import List, Optional

from ncprobe.config import ClientConfig
from ncprobe.errors import FilterParseError, NetconfError
from ncprobe.session import NetconfSession
from ncprobe.utils import (
    format_xml, log_error, remove_empty_lines, safe_name, sanitize_traceback
)
from ncprobe.xpath_filter import apply_filter

EPILOG = """Examples:
  # Using inline RPC, output to console
  ncprobe --ip 192.168.1.1 --username admin --password secret --path '<get-config><source><running/></source></get-config>'
  # Using XML file, output to file
  ncprobe --ip 192.168.1.1 --username admin --password secret --file rpc.xml --output response.xml
  # Keep only the channels whose index starts with 10115
  ncprobe --ip 192.168.1.1 --password secret --file get.xml \\
      --filter "/rpc-reply/data/terminal-device/logical-channels/channel[start-with(index,'10115')]"
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ncprobe",
        description="A NETCONF client to interact with network devices",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--ip", help="IP address of the NETCONF device (required, overrides NETCONF_HOST env)")
    parser.add_argument("--port", help="Port number for NETCONF connection (default 830)")
    parser.add_argument("--username", help="Username for authentication (default admin)")
    parser.add_argument("--password", help="Password for authentication (required, overrides NETCONF_PASSWORD env)")
    parser.add_argument("--path", help="Inline NETCONF RPC payload")
    parser.add_argument("--file", help="Path to XML file containing NETCONF RPC payload")
    parser.add_argument("--output", help="Path to output file for NETCONF response (optional)")
    parser.add_argument("--filter", help="start-with xpath filtering, only for the last element")
    parser.add_argument("--key", help="SSH private key file (optional)")
    parser.add_argument("--passphrase", help="Passphrase for the SSH private key")
    parser.add_argument("--timeout", type=float, help="Connection timeout in seconds (default 30)")
    parser.add_argument("--rpc-timeout", type=float, help="Seconds to wait for the RPC reply (default 300)")
    parser.add_argument("--capabilities", help="Where to write the device hello (default <ip>_capabilities.xml)")
    parser.add_argument("--verify-host", action="store_true", help="Verify the SSH host key against known_hosts")
    parser.add_argument("--log-file", help="Append JSON-lines session events to this file")
    return parser


def load_config(args: argparse.Namespace) -> ClientConfig:
    config = ClientConfig().load_from_env()

    # Apply args over env vars
    if args.ip: config.NC_HOST = args.ip
    if args.port: config.NC_PORT = args.port
    if args.username: config.NC_USER = args.username
    if args.password: config.NC_PASSWORD = args.password
    if args.key: config.NC_KEY_PATH = args.key
    if args.passphrase: config.NC_KEY_PASSPHRASE = args.passphrase
    if args.timeout: config.NC_TIMEOUT = args.timeout
    if args.rpc_timeout: config.NC_RPC_TIMEOUT = args.rpc_timeout
    if args.verify_host: config.NC_VERIFY_HOST_KEY = True
    if args.log_file: config.NC_LOG_FILE = args.log_file
    return config


def read_payload(args: argparse.Namespace) -> str:
    if args.file:
        try:
            with open(args.file, "r", encoding="utf-8") as handle:
                return remove_empty_lines(handle.read())
        except OSError as exc:
            raise NetconfError(f"failed to read XML file {args.file}: {exc}") from exc
    return args.path


def write_text(path: str, text: str) -> bool:
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)
        return True
    except OSError as exc:
        log_error(f"failed to write {path}: {exc}")
        return False


def run_client(config: ClientConfig, payload: str, capabilities_path: Optional[str]) -> str:
    with NetconfSession(config) as session:
        if capabilities_path:
            write_text(capabilities_path, format_xml(session.capabilities))
        reply = session.run(payload, timeout=config.NC_RPC_TIMEOUT)
    return format_xml(reply)


def filter_output(output: str, expression: str) -> str:
    try:
        return apply_filter(output, expression)
    except FilterParseError as exc:
        log_error(f"filter {expression!r} not applied: {exc}")
        return output


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args)

    # Validation
    if not config.NC_HOST or not config.NC_PASSWORD:
        parser.error("IP address and password are required (via --ip/--password or env)")
    if args.path and args.file:
        parser.error("cannot specify both --path and --file; choose one")
    if not args.path and not args.file:
        parser.error("either --path or --file must be specified")

    try:
        payload = read_payload(args)
        capabilities_path = args.capabilities or f"{safe_name(config.NC_HOST)}_capabilities.xml"
        output = run_client(config, payload, capabilities_path)
    except NetconfError as exc:
        log_error(f"Error: {exc}")
        return 1

    if args.filter:
        output = filter_output(output, args.filter)

    if args.output:
        if not write_text(args.output, output):
            return 1
        print(f"Response written to {args.output}")
    else:
        print("NETCONF Response:")
        print(output)
    return 0


def entrypoint() -> None:
    try:
        code = main()
    except Exception as exc:
        log_error(f"Panic: {exc}\n{sanitize_traceback(traceback.format_exc())}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    entrypoint()
