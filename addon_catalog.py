"""
Addon Catalog
Curated addons that can be installed by id, with their flat dependency lists
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    name: str
    repo_url: str
    category: str
    description: str = ''
    custom_folder_name: str = None
    asset_name_preference: str = None
    dependencies: tuple = ()


CATEGORIES = ['Core', 'Raid Frames', 'Healing', 'Management', 'Questing', 'Interface']

HANDY_ADDONS = [
    CatalogEntry(
        id='classicapi',
        name='Classic API',
        description='Essential API functions for Classic WoW addons compatibility.',
        repo_url='https://gitlab.com/Tsoukie/classicapi',
        category='Core'
    ),
    CatalogEntry(
        id='compactraidframe',
        name='Compact Raid Frames',
        description='Compact and customizable raid frame addon for improved raid visibility.',
        repo_url='https://gitlab.com/Tsoukie/compactraidframe-3.3.5',
        category='Raid Frames',
        dependencies=('classicapi',)
    ),
    CatalogEntry(
        id='enhancedraidframes',
        name='Enhanced Raid Frames',
        description='Enhanced raid frames with additional features and customization options.',
        repo_url='https://gitlab.com/Tsoukie/enhancedraidframes-3.3.5',
        category='Raid Frames',
        dependencies=('classicapi', 'compactraidframe')
    ),
    CatalogEntry(
        id='addonlist',
        name='Addon List',
        description='Manage and organize your addons with an in-game interface.',
        repo_url='https://gitlab.com/Tsoukie/addonlist-3.3.5',
        category='Management',
        dependencies=('classicapi',)
    ),
    CatalogEntry(
        id='clique',
        name='Clique',
        description='Click-casting addon for healers and support classes.',
        repo_url='https://gitlab.com/Tsoukie/clique-3.3.5',
        category='Healing',
        dependencies=('classicapi',)
    ),
    CatalogEntry(
        id='compactraidframe-healex',
        name='Compact Raid Frame - HealEx',
        description='Extended healing features for Compact Raid Frames.',
        repo_url='https://gitlab.com/Tsoukie/compactraidframe_healex',
        category='Healing',
        dependencies=('classicapi', 'compactraidframe')
    ),
    CatalogEntry(
        id='raidframesorter',
        name='Raid Frame Sorter',
        description='Sort and organize raid frames for better group management.',
        repo_url='https://gitlab.com/Tsoukie/raidframesorter-3.3.5',
        category='Raid Frames',
        dependencies=('classicapi', 'compactraidframe')
    ),
    CatalogEntry(
        id='framesort',
        name='FrameSort',
        description='Sort and organize unit frames and raid frames for better group management.',
        repo_url='https://gitlab.com/Tsoukie/framesort-3.3.5',
        category='Raid Frames',
        dependencies=('classicapi', 'compactraidframe')
    ),
    CatalogEntry(
        id='questie',
        name='Questie',
        description='Quest tracking with a full quest database.',
        repo_url='https://github.com/esurm/Questie',
        category='Questing',
        custom_folder_name='Questie'
    ),
    CatalogEntry(
        id='dragonui',
        name='DragonUI',
        description='Dragonflight-style user interface for Classic WoW.',
        repo_url='https://github.com/NeticSoul/DragonUI',
        category='Interface'
    ),
    CatalogEntry(
        id='bagnon',
        name='Bagnon',
        description='All-in-one bag replacement that merges all your bags into one frame.',
        repo_url='https://github.com/RichSteini/Bagnon-3.3.5',
        category='Interface'
    ),
    CatalogEntry(
        id='notplater',
        name='NotPlater',
        description='Nameplate addon with extensive customization options.',
        repo_url='https://github.com/RichSteini/NotPlater',
        category='Interface',
        custom_folder_name='NotPlater-3.3.5'
    ),
    CatalogEntry(
        id='pfquest',
        name='pfQuest',
        description='Quest helper with database and map integration.',
        repo_url='https://github.com/shagu/pfQuest',
        category='Questing',
        custom_folder_name='pfQuest-wotlk',
        asset_name_preference='pfQuest-enUS-wotlk.zip'
    ),
    CatalogEntry(
        id='pfquest-epoch',
        name='pfQuest Epoch',
        description='pfQuest extension with additional quest data.',
        repo_url='https://github.com/Bennylavaa/pfQuest-epoch',
        category='Questing',
        custom_folder_name='pfQuest-epoch',
        dependencies=('pfquest',)
    ),
]


def catalog_by_id(entries=None):
    """Map catalog ids to entries (the built-in catalog by default)."""
    return {entry.id: entry for entry in (HANDY_ADDONS if entries is None else entries)}


def install_order(catalog_id, entries=None):
    """Catalog entries to install for catalog_id, dependencies first.

    Depth-first over the flat dependency lists; every id is visited once, so
    cycles and shared dependencies do not repeat. Unknown dependency ids are
    returned separately instead of failing.

    Args:
        catalog_id: str - Requested catalog id (must exist)
        entries: Optional list - CatalogEntry items (defaults to HANDY_ADDONS)

    Returns:
        tuple - (list of CatalogEntry in install order, list of unknown ids)

    Raises:
        KeyError: If catalog_id itself is not in the catalog
    """
    catalog = catalog_by_id(entries)
    if catalog_id not in catalog:
        raise KeyError(catalog_id)

    visited = set()
    order = []
    unknown = []

    def visit(entry_id):
        if entry_id in visited:
            return
        visited.add(entry_id)
        entry = catalog.get(entry_id)
        if entry is None:
            unknown.append(entry_id)
            return
        for dependency_id in entry.dependencies:
            visit(dependency_id)
        order.append(entry)

    visit(catalog_id)
    return order, unknown
