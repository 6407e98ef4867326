# chain/abi.py
# Only the functions the engine calls; the full contract ABI lives with the
# contract sources.


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


CRASH_GAME_ABI = [
    _fn("createRound", [("serverSeedHash", "bytes32")], [("", "uint256")]),
    _fn("requestRandomness", [("roundId", "uint256")], mutability="payable"),
    _fn("revealServerSeed", [("roundId", "uint256"), ("serverSeed", "bytes")]),
    _fn(
        "getRound",
        [("roundId", "uint256")],
        [
            ("serverSeedHash", "bytes32"),
            ("serverSeed", "bytes"),
            ("sequenceNumber", "uint64"),
            ("entropyRandom", "uint256"),
            ("status", "uint8"),
        ],
        mutability="view",
    ),
    _fn("roundCounter", [], [("", "uint256")], mutability="view"),
    _fn(
        "settleRound",
        [("roundId", "uint256"), ("finalMultiplier", "uint256"), ("serverSeed", "bytes")],
    ),
    {
        "type": "function",
        "name": "processCashOuts",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "roundId", "type": "uint256"},
            {
                "name": "cashOuts",
                "type": "tuple[]",
                "components": [
                    {"name": "wallet", "type": "address"},
                    {"name": "multiplier", "type": "uint256"},
                ],
            },
        ],
        "outputs": [],
    },
    _fn(
        "getBet",
        [("roundId", "uint256"), ("user", "address")],
        [("amount", "uint256"), ("cashOutMultiplier", "uint256"), ("settled", "bool")],
        mutability="view",
    ),
    _fn("token", [], [("", "address")], mutability="view"),
]

ENTROPY_ABI = [
    _fn("getFeeV2", [], [("", "uint256")], mutability="view"),
]

TOKEN_ABI = [
    _fn("balanceOf", [("account", "address")], [("", "uint256")], mutability="view"),
]
