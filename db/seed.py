# Insert Sample Schools
from sqlmodel import Session

from db.session import engine
from models.school import School

SAMPLE_SCHOOLS = [
    {
        "id": "LINCOLN-ES",
        "name": "Lincoln Elementary School",
        "address": "1200 Lincoln Ave, Springfield, IL 62703",
        "center_lat": 39.7817,
        "center_lng": -89.6501,
        "radius_meters": 100.0,  # 100 m radius
    },
    {
        "id": "WASHINGTON-MS",
        "name": "Washington Middle School",
        "address": "2500 Washington St, Springfield, IL 62704",
        "center_lat": 39.7990,
        "center_lng": -89.6440,
        "radius_meters": 150.0,  # Larger campus
    },
]


def seed_schools():
    with Session(engine) as session:
        for data in SAMPLE_SCHOOLS:
            # Skip schools that already exist to avoid duplicates
            if session.get(School, data["id"]):
                print(f"{data['name']} already exists")
                continue
            session.add(School(**data))
            print(f"Added {data['name']}")

        session.commit()


if __name__ == "__main__":
    seed_schools()
