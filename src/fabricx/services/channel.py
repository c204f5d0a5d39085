"""Channel creation, peer joins and anchor-peer updates."""

from typing import Optional

from fabricx.cancellation import CancellationToken, ensure_token
from fabricx.constants import CLI_CONFIG_DIR, CLI_CONTAINER
from fabricx.errors import FabricXError
from fabricx.models import Network
from fabricx.services.peer_cli import lead_environment, peer_environment


class ChannelService:
    """Runs the channel protocol for a freshly started network.

    Steps are strictly sequential: create, then join every peer, then set
    anchor peers. Create and join are mandatory; anchor updates are not.
    """

    def __init__(self, docker_runtime, crypto_generator, logger, console, settle_seconds: float = 2.0):
        self.docker_runtime = docker_runtime
        self.crypto_generator = crypto_generator
        self.logger = logger
        self.console = console
        self.settle_seconds = settle_seconds

    @staticmethod
    def block_path(network: Network) -> str:
        return f"{CLI_CONFIG_DIR}/{network.channel.name}.block"

    def create_channel(self, network: Network, token: Optional[CancellationToken] = None):
        token = ensure_token(token)
        token.check("create_channel")
        channel = network.channel.name
        self.console.print(f"[blue]Creating channel {channel}...[/blue]")
        try:
            self.docker_runtime.execute_in_container(
                CLI_CONTAINER,
                [
                    "peer",
                    "channel",
                    "create",
                    "-o",
                    network.orderer.address,
                    "-c",
                    channel,
                    "-f",
                    f"{CLI_CONFIG_DIR}/{channel}.tx",
                    "--outputBlock",
                    self.block_path(network),
                ],
                env=lead_environment(network),
                token=token,
                operation="create_channel",
            )
        except FabricXError as exc:
            raise exc.wrap("create_channel", channel=channel) from exc
        self.console.print(f"[green]Channel '{channel}' created.[/green]")
        token.sleep(self.settle_seconds, "create_channel")

    def join_peers_to_channel(self, network: Network, token: Optional[CancellationToken] = None):
        token = ensure_token(token)
        for org, peer in network.iter_peers():
            token.check("join_peers_to_channel")
            self.console.print(f"[blue]Joining {peer.name} to channel {network.channel.name}...[/blue]")
            try:
                self.docker_runtime.execute_in_container(
                    CLI_CONTAINER,
                    ["peer", "channel", "join", "-b", self.block_path(network)],
                    env=peer_environment(org, peer),
                    token=token,
                    operation="join_peers_to_channel",
                )
            except FabricXError as exc:
                raise exc.wrap(
                    "join_peers_to_channel",
                    peer=peer.name,
                    org=org.name,
                    channel=network.channel.name,
                ) from exc
            self.console.print(f"[green]{peer.name} joined channel.[/green]")
            token.sleep(self.settle_seconds, "join_peers_to_channel")

    def update_anchor_peers(self, network: Network, token: Optional[CancellationToken] = None) -> int:
        """Sets the anchor peer of every organization; returns how many updates were applied."""
        token = ensure_token(token)
        applied = 0
        for org in network.organizations:
            token.check("update_anchor_peers")
            self.console.print(f"[blue]Updating anchor peer for {org.name}...[/blue]")
            try:
                file_name = self.crypto_generator.generate_anchor_peer_update(network, org, token)
                self.docker_runtime.execute_in_container(
                    CLI_CONTAINER,
                    [
                        "peer",
                        "channel",
                        "update",
                        "-o",
                        network.orderer.address,
                        "-c",
                        network.channel.name,
                        "-f",
                        f"{CLI_CONFIG_DIR}/{file_name}",
                    ],
                    env=peer_environment(org, org.anchor_peer),
                    token=token,
                    operation="update_anchor_peers",
                )
            except FabricXError as exc:
                token.check("update_anchor_peers")
                self.console.print(f"[yellow]Warning: could not update anchor peer for {org.name}.[/yellow]")
                self.logger.warning("Anchor peer update for %s skipped: %s", org.name, exc)
                continue
            applied += 1
            self.console.print(f"[green]Anchor peer updated for {org.name}.[/green]")
        return applied

    def setup_channel(self, network: Network, token: Optional[CancellationToken] = None):
        token = ensure_token(token)
        self.create_channel(network, token)
        self.join_peers_to_channel(network, token)
        self.update_anchor_peers(network, token)
        self.logger.info("Channel %s ready on network %s", network.channel.name, network.id)
