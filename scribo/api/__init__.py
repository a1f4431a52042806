"""HTTP surface: Hawk authentication, resources and the route table."""
