# blackswan/chain/abi.py
"""ABI for the BlackSwan oracle contract: only the functions we call."""


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "name": name,
        "type": "function",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
    }


ORACLE_ABI = [
    _fn("updateBlackSwanScore", [("_score", "uint256")]),
    _fn("updateMarketPeakScore", [("_score", "uint256")]),
    _fn("updateBothScores", [("_blackSwanScore", "uint256"), ("_marketPeakScore", "uint256")]),
    _fn("updateBlackSwanAnalysisIPFS", [("_ipfsHash", "string")]),
    _fn("updateMarketPeakAnalysisIPFS", [("_ipfsHash", "string")]),
    _fn("updateScoresAndAnalysis", [
        ("_blackSwanScore", "uint256"),
        ("_marketPeakScore", "uint256"),
        ("_blackSwanIPFS", "string"),
        ("_marketPeakIPFS", "string"),
    ]),
    _fn("blackSwanScore", [], [("", "uint256")], "view"),
    _fn("marketPeakScore", [], [("", "uint256")], "view"),
    _fn("blackSwanAnalysisIPFS", [], [("", "string")], "view"),
    _fn("marketPeakAnalysisIPFS", [], [("", "string")], "view"),
    _fn("paused", [], [("", "bool")], "view"),
]
