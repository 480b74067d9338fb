"""
BlackSwan Oracle Updater
BSO v1

Pushes the latest BlackSwan and MarketPeak risk scores to the on-chain
oracle contract, optionally pinning the analysis behind each score to IPFS.
"""

SERVICE_NAME = "BlackSwan Oracle"
__version__ = "1.0.0"
