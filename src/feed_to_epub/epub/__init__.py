"""Entry converters that package feed entries as documents."""
