"""
Repositories package

Each repository encapsulates database operations for a model:
- map_repository.py
- player_repository.py

Usage:
    from repositories.map_repository import MapRepository
    existing = MapRepository.find_one_by_display_name("Seton's Clutch")
"""
