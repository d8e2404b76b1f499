# Models Package
