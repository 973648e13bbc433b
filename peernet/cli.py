#!/usr/bin/env python3
"""
peernet CLI

Command-line interface for LAN peer discovery.

Usage:
    peernet start                # Run a node (discovery + chat)
    peernet peers                # Watch membership changes
    peernet announce [ID]        # Only announce an identity
    peernet send MESSAGE         # Broadcast one chat message
    peernet localip              # Show the local IP used for identities
    peernet config               # Show the effective configuration
"""

import asyncio
import json
import logging
import sys
import threading
import time
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.logging import RichHandler

from .config import load_config
from .discovery import MembershipUpdate, PeerReceiver, PeerTransmitter, UpdateChannel
from .errors import PeernetError
from .node import ChatPacket, PeerNode
from .transport import BroadcastTransmitter, JsonCodec, get_localip, make_identity

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def render_update(update: MembershipUpdate) -> Table:
    """Render a membership update as a table."""
    table = Table(title="Peer update")
    table.add_column("Peer", style="cyan")
    table.add_column("State")

    for peer in update.peers:
        state = "[green]new[/green]" if peer == update.new else "live"
        table.add_row(str(peer), state)
    for peer in update.lost:
        table.add_row(str(peer), "[red]lost[/red]")

    return table


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(path_type=Path),
              help='JSON config file')
@click.option('--peer-port', type=int, help='Peer discovery UDP port')
@click.option('--bcast-port', type=int, help='Chat broadcast UDP port')
@click.option('--broadcast-addr', help='Broadcast address to send to')
@click.pass_context
def cli(ctx, verbose, config_path, peer_port, bcast_port, broadcast_addr):
    """peernet - peer discovery over UDP broadcast."""
    try:
        config = load_config(config_path)
        if peer_port is not None:
            config.peer_port = peer_port
        if bcast_port is not None:
            config.bcast_port = bcast_port
        if broadcast_addr is not None:
            config.broadcast_addr = broadcast_addr
        config.validate()
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='configuration')

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--api-port', type=int, help='REST API port')
@click.option('--no-api', is_flag=True, help='Disable REST API')
@click.pass_context
def start(ctx, api_port, no_api):
    """Run a node and chat from stdin."""
    config = ctx.obj['config']
    if api_port is not None:
        config.api_port = api_port

    def read_stdin(node: PeerNode, loop: asyncio.AbstractEventLoop):
        # Daemon thread: a blocked readline must not hold up shutdown
        for line in sys.stdin:
            if line.strip():
                asyncio.run_coroutine_threadsafe(node.send_message(line.strip()), loop)

    def print_message(packet: ChatPacket):
        console.print(f"[magenta]{packet.sender or '?'}[/magenta]: {packet.msg}")

    async def run():
        node = PeerNode(config)
        node.on_update(lambda update: console.print(render_update(update)))
        node.on_message(print_message)

        try:
            await node.start()

            console.print(Panel.fit(
                f"[bold green]peernet Node Started[/bold green]\n\n"
                f"Identity: [cyan]{node.identity}[/cyan]\n"
                f"Peer Port: [yellow]{config.peer_port}[/yellow]\n"
                f"Broadcast Port: [yellow]{config.bcast_port}[/yellow]",
                title="Node Info"
            ))

            threading.Thread(
                target=read_stdin, args=(node, asyncio.get_running_loop()), daemon=True
            ).start()

            if not no_api:
                console.print(f"\n[dim]REST API available at http://localhost:{config.api_port}[/dim]")
                console.print(f"[dim]API docs at http://localhost:{config.api_port}/docs[/dim]\n")

                from .api import run_api_server
                await run_api_server(node, port=config.api_port)
            else:
                console.print("\n[dim]Type to chat, Ctrl+C to stop[/dim]\n")
                while True:
                    await asyncio.sleep(1)

        finally:
            await node.stop()
            console.print("[green]Node stopped[/green]")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
    except PeernetError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.option('--duration', type=float, help='Stop after this many seconds')
@click.pass_context
def peers(ctx, duration):
    """Watch peers join and leave."""
    config = ctx.obj['config']

    async def watch(updates: UpdateChannel):
        async for update in updates:
            console.print(render_update(update))

    async def run():
        updates = UpdateChannel(config.update_queue_size)
        with PeerReceiver.create(config.peer_port, host=config.host,
                                 timeout=config.peer_timeout) as receiver:
            console.print(f"[dim]Listening for peers on port {config.peer_port}...[/dim]")
            detector = asyncio.create_task(receiver.run(updates))
            viewer = asyncio.create_task(watch(updates))
            try:
                await asyncio.wait(
                    [detector, viewer],
                    timeout=duration,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                detector.cancel()
                viewer.cancel()
                await asyncio.gather(detector, viewer, return_exceptions=True)

            if detector.done() and not detector.cancelled() and detector.exception():
                raise detector.exception()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    except PeernetError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument('identity', required=False)
@click.option('--count', type=int, help='Send this many heartbeats and exit')
@click.pass_context
def announce(ctx, identity, count):
    """Announce an identity without tracking peers."""
    config = ctx.obj['config']

    async def run():
        peer_id = identity or config.identity or make_identity()
        with PeerTransmitter.create(config.peer_port,
                                    broadcast_addr=config.broadcast_addr,
                                    interval=config.announce_interval) as transmitter:
            console.print(f"Announcing [cyan]{peer_id}[/cyan] on port {config.peer_port}")
            if count is None:
                await transmitter.run(peer_id)
            else:
                for _ in range(count):
                    await transmitter.announce_once(peer_id)
                    await asyncio.sleep(config.announce_interval)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    except PeernetError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument('message')
@click.pass_context
def send(ctx, message):
    """Broadcast one chat message."""
    config = ctx.obj['config']

    async def run():
        packet = ChatPacket(msg=message, timestamp=int(time.time()))
        with BroadcastTransmitter.create(config.bcast_port, config.broadcast_addr,
                                         codec=JsonCodec(ChatPacket)) as transmitter:
            await transmitter.transmit(packet)
        console.print(f"[green]Sent to port {config.bcast_port}[/green]")

    try:
        asyncio.run(run())
    except PeernetError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
def localip():
    """Show the local IP address."""
    try:
        console.print(get_localip())
    except PeernetError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command('config')
@click.pass_context
def show_config(ctx):
    """Show the effective configuration."""
    click.echo(json.dumps(ctx.obj['config'].to_dict(), indent=2))


def main():
    cli()


if __name__ == '__main__':
    main()
