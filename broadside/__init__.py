"""Broadside: peer-to-peer Battleship state sync over a best-effort relay."""
