"""AHR999 index data, investment amount rules and the auto-buy task."""