import logging

from gatelink.registry import AdRegistry, LinkRegistry

logger = logging.getLogger(__name__)

DEMO_LINK_ID = "demo"


def seed_demo_data(links: LinkRegistry, ads: AdRegistry) -> bool:
    """Заполняет пустое хранилище демо-ссылкой и двумя демо-рекламами."""
    if links.list():
        return False

    logger.info("Seeding demo data")
    links.create("https://replit.com", "Replit Homepage (Demo)", link_id=DEMO_LINK_ID)
    ads.create(
        "landing_top",
        '<div class="bg-gray-800 p-4 border border-green-500/20 rounded text-center '
        'text-green-400">DEMO AD: Top Banner</div>',
    )
    ads.create(
        "step2",
        '<div class="bg-gray-800 p-8 border border-green-500/20 rounded text-center '
        'text-green-400 text-xl font-bold">DEMO AD: Step 2 Large Ad</div>',
    )
    return True
