import json
from pathlib import Path

from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract

from .chain_reader import ChainReader


class ContractUtility:
    """
    Utility for contract construction and ABI loading.

    Holds one AsyncWeb3 instance per RPC endpoint so that callers can build
    redundant readers for the same contract.
    """

    def __init__(self, rpc_urls: tuple[str, ...] | list[str] = (), request_timeout: int = 30):
        """
        Initialize the ContractUtility.

        Args:
            rpc_urls: RPC endpoints to connect to (empty for ABI-only mode)
            request_timeout: HTTP request timeout in seconds
        """
        self.rpc_urls = tuple(rpc_urls)
        self.request_timeout = request_timeout
        self.providers: list[AsyncWeb3] = [self.setup_web3(url) for url in self.rpc_urls]

    @property
    def w3(self) -> AsyncWeb3:
        """The canonical (first) provider."""
        if not self.providers:
            raise ValueError("ContractUtility was created without RPC URLs")
        return self.providers[0]

    def setup_web3(self, rpc_url: str) -> AsyncWeb3:
        if rpc_url.startswith(("ws:", "wss:")):
            raise ValueError(
                f"WebSocket endpoints are not supported for polling: {rpc_url}"
            )
        return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={'timeout': self.request_timeout}
        ))

    def get_contract_abi(self, contract_name: str) -> list:
        """Fetches ABI of the given contract from the abi folder"""
        contract_path = (
            Path(__file__).parent.parent
            / "abi"
            / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data = json.load(file)

        return contract_data["abi"]

    def get_contract(self, contract_name: str, address: str, provider_index: int = 0) -> AsyncContract:
        return self.providers[provider_index].eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name),
        )

    def get_readers(self, contract_name: str, address: str) -> list[ChainReader]:
        """Build one ChainReader per configured provider for the same contract."""
        return [
            ChainReader(self.get_contract(contract_name, address, index), name=f"{contract_name}[{index}]")
            for index in range(len(self.providers))
        ]
