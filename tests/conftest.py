import pytest

from receipt_understanding.core.models import BoundingBox, TextBlock
from receipt_understanding.core.templates import create_initial_templates

SAMPLE_TEXT = """WALMART
Save money. Live better.
123 Main Street
Anytown, CA 90210
Tel: (555) 123-4567
01/15/2023 14:30:22
Apple $2.99
Bananas 2 @ $0.59 $1.18
Subtotal $13.94
Tax $0.84
Total $14.78
VISA XXXX1234
Thank you for shopping!"""

BLOCK_LINES = [
    "WALMART",
    "01/15/2023",
    "Apple $2.99",
    "Bananas 2 @ $0.59 $1.18",
    "Subtotal $4.17",
    "Tax $0.25",
    "Total $4.42",
    "Thank you",
]


def make_blocks(lines, step=30, height=20):
    return [
        TextBlock(text=line, confidence=0.9, bounding_box=BoundingBox(10, i * step, 200, height))
        for i, line in enumerate(lines)
    ]


@pytest.fixture
def sample_text():
    return SAMPLE_TEXT


@pytest.fixture
def sample_blocks():
    return make_blocks(BLOCK_LINES)


@pytest.fixture
def templates():
    return create_initial_templates()
