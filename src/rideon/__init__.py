"""RideOn: team cycling-mileage tracker API."""
