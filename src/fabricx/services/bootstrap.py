"""Network bootstrap: plan, generate artifacts and write the compose manifest."""

import os
import uuid
from typing import Optional

from fabricx.cancellation import CancellationToken, ensure_token
from fabricx.models import Channel, Network, NetworkConfig
from fabricx.services.compose import write_compose
from fabricx.services.topology import apply_defaults, build_connection_profile, plan_topology


def new_network_id() -> str:
    return uuid.uuid4().hex[:8]


class NetworkBootstrapper:
    """Creates the on-disk subtree of a new network.

    Nothing survives a failed bootstrap: whatever the failure, including
    cancellation, the subtree is removed before the error propagates.
    """

    def __init__(self, filesystem, crypto_generator, logger, console, work_dir: str):
        self.filesystem = filesystem
        self.crypto_generator = crypto_generator
        self.logger = logger
        self.console = console
        self.work_dir = work_dir

    def network_root(self) -> str:
        return os.path.join(self.work_dir, "fabricx")

    def bootstrap(self, config: NetworkConfig, token: Optional[CancellationToken] = None) -> Network:
        token = ensure_token(token)
        token.check("bootstrap")

        config = apply_defaults(config)
        network_id = new_network_id()
        base_path = os.path.join(self.network_root(), network_id)
        network = Network(
            id=network_id,
            name=config.network_name,
            base_path=base_path,
            config=config,
            channel=Channel(name=config.channel_name),
        )

        self.console.print(f"[bold blue]Bootstrapping network {network.name} ({network_id})[/bold blue]")
        try:
            organizations, orderers = plan_topology(config)
            network.organizations = organizations
            network.orderers = orderers

            self.filesystem.ensure_dir(network.crypto_path)
            self.filesystem.ensure_dir(network.config_path)

            self.crypto_generator.generate(network, token)

            token.check("bootstrap")
            write_compose(network, self.filesystem)
            for org in network.organizations:
                self.filesystem.write_yaml(
                    os.path.join(network.config_path, f"connection-{org.name.lower()}.yaml"),
                    build_connection_profile(network, org.name),
                )
        except BaseException:
            self.logger.warning("Bootstrap of network %s failed, removing %s", network_id, base_path)
            self.filesystem.cleanup_dir(base_path)
            raise

        self.logger.info("Network %s bootstrapped under %s", network_id, base_path)
        return network
