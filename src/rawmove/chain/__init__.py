__all__ = ["ChainClient", "ChainGateway", "LocalSigner", "Signer"]

from rawmove.chain.client import ChainClient, ChainGateway
from rawmove.chain.signer import LocalSigner, Signer
