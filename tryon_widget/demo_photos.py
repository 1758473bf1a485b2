"""
Demo person photos shipped with the widget.

Their ids are sent as `personKey` so the API can serve cached results.
"""

DEMO_PHOTOS = (
    {"url": "/assets/demo_pics/p1.jpg", "id": "new_demo_person_1"},
    {"url": "/assets/demo_pics/p2.jpg", "id": "new_demo_person_2"},
    {"url": "/assets/demo_pics/p3.jpg", "id": "new_demo_person_3"},
    {"url": "/assets/demo_pics/p4.jpg", "id": "new_demo_person_4"},
    {"url": "/assets/demo_pics/p1.jpg", "id": "new_demo_person_5"},
    {"url": "/assets/demo_pics/p2.jpg", "id": "new_demo_person_6"},
    {"url": "/assets/demo_pics/p3.jpg", "id": "new_demo_person_7"},
    {"url": "/assets/demo_pics/p4.jpg", "id": "new_demo_person_8"},
    {"url": "/assets/demo_pics/p1.jpg", "id": "new_demo_person_9"},
    {"url": "/assets/demo_pics/p2.jpg", "id": "new_demo_person_10"},
    {"url": "/assets/demo_pics/p3.jpg", "id": "new_demo_person_11"},
    {"url": "/assets/demo_pics/p4.jpg", "id": "new_demo_person_12"},
)

# Later entries win for repeated URLs
DEMO_PHOTO_IDS = {photo["url"]: photo["id"] for photo in DEMO_PHOTOS}
